"""Adapter settings schema: entries, defaults, ordering and JSON Schema export."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Sequence, Union

__all__ = [
    "SchemaEntry",
    "Schema",
    "LiteralValue",
    "ComputedValue",
    "SettingValue",
    "as_setting_value",
    "resolve_value",
    "get_ordered_keys",
    "get_default",
    "to_json_schema",
]


@dataclass(slots=True, frozen=True)
class LiteralValue:
    """A setting value given as plain data."""

    value: Any

    def resolve(self, adapter: Any = None) -> Any:
        return self.value


@dataclass(slots=True, frozen=True)
class ComputedValue:
    """A setting value produced by calling ``fn(adapter)`` when needed."""

    fn: Callable[[Any], Any]

    def resolve(self, adapter: Any = None) -> Any:
        return self.fn(adapter)


SettingValue = Union[LiteralValue, ComputedValue]


def as_setting_value(raw: Any) -> SettingValue:
    """Tag ``raw`` as literal or computed. Already-tagged values pass through."""

    if isinstance(raw, (LiteralValue, ComputedValue)):
        return raw
    if callable(raw):
        return ComputedValue(raw)
    return LiteralValue(raw)


def resolve_value(raw: Any, adapter: Any = None) -> Any:
    """Resolve a literal, a callable, or a tagged value against ``adapter``."""

    return as_setting_value(raw).resolve(adapter)


_JSON_TYPES: Mapping[str, str] = {
    "string": "string",
    "number": "number",
    "integer": "integer",
    "boolean": "boolean",
    "list": "array",
    "map": "object",
}


@dataclass(slots=True)
class SchemaEntry:
    """Description of one adapter setting.

    Attributes:
        type: ``string``, ``number``, ``integer``, ``boolean``, ``enum``, ``list`` or ``map``.
        default: Literal default or a callable receiving the adapter.
        choices: Allowed values for ``enum`` entries; may be a callable.
        desc: Human-readable description shown next to the setting.
        order: Position in the rendered settings block.
        minimum: Inclusive lower bound for numeric entries.
        maximum: Inclusive upper bound for numeric entries.
        validate: Extra predicate; a falsy result marks the value invalid.
        optional: Whether ``None`` is an accepted value.
        mapping: Name of the provider parameter; defaults to the key.
    """

    type: str = "string"
    default: Any = None
    choices: Sequence[Any] | Callable[[Any], Sequence[Any]] | None = None
    desc: str = ""
    order: int | None = None
    minimum: float | None = None
    maximum: float | None = None
    validate: Callable[[Any], bool] | None = None
    optional: bool = False
    mapping: str | None = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def resolve_default(self, adapter: Any = None) -> Any:
        return resolve_value(self.default, adapter)

    def resolve_choices(self, adapter: Any = None) -> list[Any]:
        if self.choices is None:
            return []
        return list(resolve_value(self.choices, adapter))

    def to_json_schema(self, adapter: Any = None) -> Dict[str, Any]:
        fragment: Dict[str, Any] = {}
        if self.type == "enum":
            fragment["enum"] = self.resolve_choices(adapter)
        elif self.type in _JSON_TYPES:
            fragment["type"] = _JSON_TYPES[self.type]
        if self.minimum is not None:
            fragment["minimum"] = self.minimum
        if self.maximum is not None:
            fragment["maximum"] = self.maximum
        if self.optional and fragment:
            return {"anyOf": [fragment, {"type": "null"}]}
        return fragment


Schema = Mapping[str, SchemaEntry]


def get_ordered_keys(schema: Schema) -> list[str]:
    """Keys sorted by ``order`` (unordered keys last) then by name."""

    def sort_key(name: str) -> tuple[int, float, str]:
        order = schema[name].order
        return (order is None, order if order is not None else 0, name)

    return sorted(schema, key=sort_key)


def get_default(
    schema: Schema,
    overrides: Mapping[str, Any] | None = None,
) -> Dict[str, Any]:
    """Return ``{key: default}`` for every schema key, with ``overrides`` on top.

    Defaults stay unresolved (callables remain callables) so they are computed
    at render/validate time against the adapter in use.
    """

    settings: Dict[str, Any] = {key: schema[key].default for key in get_ordered_keys(schema)}
    if overrides:
        settings.update(overrides)
    return settings


def to_json_schema(schema: Schema, adapter: Any = None) -> Dict[str, Any]:
    """Translate an adapter schema into a JSON Schema object.

    Unknown keys remain allowed so older documents keep validating.
    """

    return {
        "type": "object",
        "properties": {key: entry.to_json_schema(adapter) for key, entry in schema.items()},
        "additionalProperties": True,
    }
