"""Tests for the chat settings dataclasses."""

from __future__ import annotations

import pytest

from confab.services.settings import (
    DEFAULT_SYSTEM_PROMPT,
    DisplaySettings,
    RoleLabels,
    Settings,
    ToolSettings,
)


def test_from_mapping_returns_defaults_for_empty_payload() -> None:
    assert Settings.from_mapping(None) == Settings()
    assert Settings.from_mapping({}) == Settings()


def test_from_mapping_accepts_nested_sections() -> None:
    settings = Settings.from_mapping(
        {
            "language": "French",
            "roles": {"user": "Human", "llm": "Bot"},
            "display": {"show_settings": True},
            "tools": {"block_tag": "tool"},
        }
    )

    assert settings.language == "French"
    assert settings.roles == RoleLabels(user="Human", llm="Bot")
    assert settings.display.show_settings is True
    assert settings.display.show_header_separator is False
    assert settings.tools.block_tag == "tool"


def test_unknown_keys_are_ignored() -> None:
    settings = Settings.from_mapping({"bogus": 1, "display": {"nope": True}, "adapter": "local"})

    assert settings.adapter == "local"
    assert settings.display == DisplaySettings()


def test_with_overrides_accepts_dotted_paths_and_keeps_original() -> None:
    original = Settings()

    updated = original.with_overrides({"display.show_header_separator": True, "tools.timeout": None})

    assert updated.display.show_header_separator is True
    assert updated.tools.timeout is None
    assert original.display.show_header_separator is False
    assert original.tools == ToolSettings()


def test_env_overrides_coerce_values() -> None:
    environ = {
        "CONFAB_ADAPTER": "local",
        "CONFAB_LANGUAGE": "German",
        "CONFAB_SHOW_SETTINGS": "yes",
        "CONFAB_SHOW_HEADER_SEPARATOR": "0",
        "CONFAB_TOOL_TIMEOUT": "2.5",
    }

    settings = Settings().apply_env_overrides(environ)

    assert settings.adapter == "local"
    assert settings.language == "German"
    assert settings.display.show_settings is True
    assert settings.display.show_header_separator is False
    assert settings.tools.timeout == 2.5


def test_invalid_float_env_override_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    settings = Settings().apply_env_overrides({"CONFAB_TOOL_TIMEOUT": "soon"})

    assert settings.tools.timeout == ToolSettings().timeout
    assert "CONFAB_TOOL_TIMEOUT" in caplog.text


def test_env_overrides_without_matches_return_same_instance() -> None:
    settings = Settings()

    assert settings.apply_env_overrides({"UNRELATED": "1"}) is settings


def test_resolve_system_prompt_formats_language() -> None:
    settings = Settings(language="Spanish")

    assert settings.resolve_system_prompt({}) == DEFAULT_SYSTEM_PROMPT.format(language="Spanish")
    assert "Italian" in settings.resolve_system_prompt({"language": "Italian"})


def test_resolve_system_prompt_callable_and_unformattable() -> None:
    dynamic = Settings(system_prompt=lambda context: f"file={context['file']}")
    literal = Settings(system_prompt="Use {unknown} braces")

    assert dynamic.resolve_system_prompt({"file": "a.py"}) == "file=a.py"
    assert literal.resolve_system_prompt({}) == "Use {unknown} braces"


def test_role_labels() -> None:
    labels = RoleLabels(user="Me", llm="Copilot")

    assert labels.label_for("llm") == "Copilot"
    assert labels.label_for("user") == "Me"
    assert labels.label_for("system") == "Me"
