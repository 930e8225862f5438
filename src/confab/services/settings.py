"""Settings dataclasses and environment overrides for chat sessions."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Mapping

__all__ = [
    "Settings",
    "RoleLabels",
    "DisplaySettings",
    "ToolSettings",
    "DEFAULT_SYSTEM_PROMPT",
    "DEFAULT_TOOL_SYSTEM_PROMPT",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI programming assistant embedded in a text editor. "
    "Answer in {language}. Keep answers concise and use Markdown fenced code blocks."
)
DEFAULT_TOOL_SYSTEM_PROMPT = (
    "You have access to tools. To call a tool, reply with a fenced code block tagged "
    "`json` containing an object with a `name` and an `arguments` object. "
    "Only call one tool per block and wait for the result before continuing."
)

_ENV_OVERRIDES: Mapping[str, str] = {
    "CONFAB_ADAPTER": "adapter",
    "CONFAB_ADAPTER_OVERRIDE": "adapter_override",
    "CONFAB_LANGUAGE": "language",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "CONFAB_SHOW_SETTINGS": "display.show_settings",
    "CONFAB_SHOW_HEADER_SEPARATOR": "display.show_header_separator",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "CONFAB_TOOL_TIMEOUT": "tools.timeout",
}
_TRUE_VALUES = {"1", "true", "yes", "on"}

SystemPrompt = str | Callable[[Mapping[str, Any]], str]


@dataclass(slots=True)
class RoleLabels:
    """Heading labels used for each role inside the chat document."""

    user: str = "Me"
    llm: str = "Assistant"

    def label_for(self, role: str) -> str:
        if role == "llm":
            return self.llm
        return self.user


@dataclass(slots=True)
class DisplaySettings:
    """Options controlling how the chat document is rendered."""

    show_settings: bool = False
    show_header_separator: bool = False
    separator: str = "─"
    intro_message: str = "Welcome! Type your question and submit the chat."


@dataclass(slots=True)
class ToolSettings:
    """Options for tool references and tool payload detection."""

    system_prompt: str = DEFAULT_TOOL_SYSTEM_PROMPT
    block_tag: str = "json"
    timeout: float | None = 30.0


@dataclass(slots=True)
class Settings:
    """Configuration shared by every chat session created by a host."""

    adapter: str = "openai"
    adapter_override: str | None = None
    language: str = "English"
    system_prompt: SystemPrompt = DEFAULT_SYSTEM_PROMPT
    roles: RoleLabels = field(default_factory=RoleLabels)
    display: DisplaySettings = field(default_factory=DisplaySettings)
    tools: ToolSettings = field(default_factory=ToolSettings)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "Settings":
        """Build settings from a nested mapping, ignoring unknown keys."""

        settings = cls()
        if not payload:
            return settings
        return settings.with_overrides(payload)

    def with_overrides(self, overrides: Mapping[str, Any]) -> "Settings":
        """Return a copy with ``overrides`` applied.

        Keys may be nested mappings (``{"display": {"show_settings": True}}``)
        or dotted paths (``{"display.show_settings": True}``).
        """

        flattened = _flatten(overrides)
        top_level: dict[str, Any] = {}
        nested: dict[str, dict[str, Any]] = {}
        known = {item.name for item in fields(self)}
        for key, value in flattened.items():
            head, _, tail = key.partition(".")
            if head not in known:
                LOGGER.debug("Ignoring unknown setting %s", key)
                continue
            if tail:
                nested.setdefault(head, {})[tail] = value
            else:
                top_level[head] = value
        for section, values in nested.items():
            current = getattr(self, section)
            section_fields = {item.name for item in fields(current)}
            accepted = {name: value for name, value in values.items() if name in section_fields}
            top_level[section] = replace(current, **accepted)
        return replace(self, **top_level)

    def apply_env_overrides(self, environ: Mapping[str, str] | None = None) -> "Settings":
        """Return a copy with ``CONFAB_*`` environment overrides applied."""

        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if not overrides:
            return self
        LOGGER.debug("Applying environment overrides: %s", sorted(overrides))
        return self.with_overrides(overrides)

    def resolve_system_prompt(self, context: Mapping[str, Any]) -> str:
        """Return the system prompt text, calling it when it is a callable."""

        prompt = self.system_prompt
        if callable(prompt):
            return prompt(context)
        try:
            return prompt.format(language=context.get("language", self.language))
        except (KeyError, IndexError):
            return prompt


def _flatten(payload: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    flattened: dict[str, Any] = {}
    for key, value in payload.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping) and not prefix:
            flattened.update(_flatten(value, prefix=f"{name}."))
        else:
            flattened[name] = value
    return flattened
