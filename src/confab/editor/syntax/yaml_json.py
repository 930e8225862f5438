"""Settings block decoding, encoding and schema validation.

The settings block is YAML. It is loaded with ruamel's round-trip loader so
every key keeps its line and column, which lets validation errors land on the
offending line in the chat document.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping

from ...ai.schema import Schema, get_ordered_keys, resolve_value, to_json_schema
from ...chat.errors import SettingsDecodeError
from ...ui.events import Diagnostic
from .markdown import SettingsBlock, Span

try:  # pragma: no cover - dependency declared in pyproject
    import jsonschema
except Exception:  # pragma: no cover - reported through validation results
    jsonschema = None  # type: ignore[assignment]

try:  # pragma: no cover - dependency declared in pyproject
    from ruamel.yaml import YAML
    from ruamel.yaml.comments import CommentedMap
    from ruamel.yaml.error import MarkedYAMLError
except Exception:  # pragma: no cover - reported through SettingsDecodeError
    YAML = None  # type: ignore[assignment]
    CommentedMap = None  # type: ignore[assignment]
    MarkedYAMLError = None  # type: ignore[assignment]

LOGGER = logging.getLogger(__name__)

MAX_SCHEMA_ERRORS = 25


@dataclass(slots=True)
class ParsedSettings(Mapping[str, Any]):
    """Decoded settings plus the source span of every key."""

    values: Dict[str, Any] = field(default_factory=dict)
    positions: Dict[str, Span] = field(default_factory=dict)
    block: SettingsBlock | None = None

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.values)

    def key_at(self, line: int) -> str | None:
        """Return the key whose entry covers ``line`` (continuation lines included)."""

        if self.block is None or not self.block.first_line <= line < self.block.closing_line:
            return None
        match: str | None = None
        for key, span in sorted(self.positions.items(), key=lambda item: item[1].start_line):
            if span.start_line <= line:
                match = key
        return match


def decode_settings(block: SettingsBlock | None) -> ParsedSettings:
    """Decode ``block`` into :class:`ParsedSettings`.

    Raises:
        SettingsDecodeError: When the block is missing, is not valid YAML, or
            is not a mapping.
    """

    if block is None:
        raise SettingsDecodeError("Chat document has no settings block")
    parser = _create_yaml_parser()
    if parser is None:
        raise SettingsDecodeError("Settings decoding requires the 'ruamel.yaml' dependency.")
    try:
        loaded = parser.load(block.text) if block.text.strip() else CommentedMap()
    except MarkedYAMLError as exc:  # type: ignore[misc]
        mark = getattr(exc, "problem_mark", None) or getattr(exc, "context_mark", None)
        line = block.first_line + int(mark.line) if mark is not None else None
        detail = exc.problem or str(exc) or "Invalid YAML in settings block"
        raise SettingsDecodeError(detail, line=line) from exc
    except Exception as exc:  # ruamel raises a few non-marked errors (duplicate keys)
        raise SettingsDecodeError(str(exc) or "Invalid YAML in settings block", line=block.first_line) from exc
    if not isinstance(loaded, Mapping):
        raise SettingsDecodeError("Settings block must be a mapping of key: value pairs", line=block.first_line)

    lines = block.text.split("\n")
    positions: Dict[str, Span] = {}
    for key in loaded:
        line, col = _key_position(loaded, key)
        if line is None:
            continue
        text = lines[line] if line < len(lines) else ""
        positions[str(key)] = Span(block.first_line + line, col, block.first_line + line, len(text))
    values = {str(key): _plain(value) for key, value in loaded.items()}
    return ParsedSettings(values=values, positions=positions, block=block)


def encode_settings(schema: Schema, settings: Mapping[str, Any], adapter: Any = None) -> list[str]:
    """Render ``settings`` as settings block lines (without the fences), in schema order."""

    parser = _create_yaml_parser()
    if parser is None:
        raise SettingsDecodeError("Settings encoding requires the 'ruamel.yaml' dependency.")
    data = CommentedMap()
    for key in get_ordered_keys(schema):
        raw = settings[key] if key in settings else schema[key].default
        data[key] = _plain(resolve_value(raw, adapter))
    if not data:
        return []
    stream = io.StringIO()
    parser.dump(data, stream)
    return stream.getvalue().rstrip("\n").split("\n")


def validate_settings(schema: Schema, settings: Mapping[str, Any], adapter: Any = None) -> dict[str, str]:
    """Return ``{key: message}`` for every setting that violates ``schema``.

    Keys unknown to the schema are ignored. Only the first problem per key is
    reported.
    """

    errors: dict[str, str] = {}
    values = {key: value for key, value in settings.items() if key in schema}
    if jsonschema is None:  # pragma: no cover - dependency always installed
        LOGGER.warning("Settings validation requires the 'jsonschema' dependency")
        return errors

    validator = jsonschema.Draft202012Validator(to_json_schema(schema, adapter))
    for issue in validator.iter_errors(values):
        path = list(issue.absolute_path)
        if not path:
            continue
        key = str(path[0])
        errors.setdefault(key, _format_issue(key, issue))
        if len(errors) >= MAX_SCHEMA_ERRORS:
            break

    for key, value in values.items():
        predicate = schema[key].validate
        if key in errors or predicate is None:
            continue
        try:
            accepted = predicate(value)
        except Exception as exc:
            LOGGER.debug("Validator for %s raised", key, exc_info=True)
            accepted = False
            errors[key] = f"{key}: {exc}"
            continue
        if not accepted:
            errors[key] = f"{key}: {value!r} is not a valid value"
    return errors


def settings_diagnostics(
    schema: Schema,
    settings: ParsedSettings,
    adapter: Any = None,
) -> list[Diagnostic]:
    """Validate ``settings`` and place each error on its key's source span."""

    errors = validate_settings(schema, settings, adapter)
    diagnostics: list[Diagnostic] = []
    for key, message in errors.items():
        span = settings.positions.get(key)
        if span is None:
            continue
        diagnostics.append(
            Diagnostic(
                line=span.start_line,
                col=span.start_col,
                end_line=span.end_line,
                end_col=span.end_col,
                message=message,
                severity="error",
            )
        )
    diagnostics.sort(key=lambda item: (item.line, item.col))
    return diagnostics


# ---------------------------------------------------------------------------
# YAML helpers
# ---------------------------------------------------------------------------
def _create_yaml_parser() -> YAML | None:  # type: ignore[valid-type]
    if YAML is None:  # pragma: no cover - dependency always installed
        return None
    parser = YAML(typ="rt")
    parser.allow_duplicate_keys = False
    parser.default_flow_style = False
    parser.width = 4096
    return parser


def _key_position(mapping: Any, key: Any) -> tuple[int | None, int]:
    lc = getattr(mapping, "lc", None)
    if lc is None:
        return None, 0
    try:
        line, col = lc.key(key)
    except (KeyError, TypeError):
        return None, 0
    return int(line), int(col)


def _plain(value: Any) -> Any:
    """Convert ruamel round-trip containers and scalars into plain Python values."""

    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return float(value)
    if isinstance(value, str):
        return str(value)
    return value


def _format_issue(key: str, issue: Any) -> str:
    message = getattr(issue, "message", str(issue))
    return f"{key}: {message}"
