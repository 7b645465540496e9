"""Declarative field shapes compiled to pydantic annotations.

Object and array attributes describe their shape with a small schema::

    {
        "street": "string",
        "zip": {"type": "number", "nullable": True},
        "tags": {"type": "array", "items": "string"},
        "geo": {"type": "object", "fields": {"lat": "number", "lng": "number"}},
        "status": {"type": "enum", "values": ["active", "closed"]},
        "since": "date",
    }

A bare string is shorthand for ``{"type": <string>}``. Shapes compile once, at
registration, into pydantic types; validation then runs through a
``TypeAdapter``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import ConfigDict, StrictBool, StrictFloat, StrictInt, StrictStr, create_model

from tablespine.core.errors import ConfigError

FieldDef = Union[str, Mapping[str, Any]]

PRIMITIVE_TYPES: dict[str, Any] = {
    "string": StrictStr,
    "number": Union[StrictInt, StrictFloat],
    "boolean": StrictBool,
    "date": datetime,
}

FIELD_TYPES = frozenset(PRIMITIVE_TYPES) | {"enum", "object", "array"}


def normalize_field(field_def: FieldDef) -> dict[str, Any]:
    if isinstance(field_def, str):
        field_def = {"type": field_def}
    if not isinstance(field_def, Mapping) or "type" not in field_def:
        raise ConfigError(f"Invalid field definition: {field_def!r}")
    if field_def["type"] not in FIELD_TYPES:
        raise ConfigError(f"Unsupported field type: {field_def['type']!r}")
    return dict(field_def)


def enum_annotation(values: list[str] | tuple[str, ...]) -> Any:
    if not values:
        raise ConfigError("Enum fields need at least one value")
    return Literal[tuple(values)]  # type: ignore[valid-type]


def field_annotation(field_def: FieldDef, *, name: str = "Object") -> Any:
    """Pydantic annotation for one field, ignoring its nullability."""
    spec = normalize_field(field_def)
    kind = spec["type"]
    if kind in PRIMITIVE_TYPES:
        return PRIMITIVE_TYPES[kind]
    if kind == "enum":
        return enum_annotation(spec.get("values", ()))
    if kind == "object":
        if "fields" not in spec:
            raise ConfigError(f"Object field {name!r} needs 'fields'")
        return object_model(name, spec["fields"])
    if "items" not in spec:
        raise ConfigError(f"Array field {name!r} needs 'items'")
    item_spec = normalize_field(spec["items"])
    item = field_annotation(item_spec, name=f"{name}Item")
    if item_spec.get("nullable"):
        item = Optional[item]
    return list[item]  # type: ignore[valid-type]


def object_model(name: str, fields: Mapping[str, FieldDef]) -> Any:
    """Build a closed pydantic model for an object schema, recursively."""
    model_fields: dict[str, Any] = {}
    for field_name, field_def in fields.items():
        spec = normalize_field(field_def)
        annotation = field_annotation(spec, name=f"{name}_{field_name}")
        if spec.get("nullable"):
            model_fields[field_name] = (Optional[annotation], None)
        else:
            model_fields[field_name] = (annotation, ...)
    return create_model(  # type: ignore[call-overload]
        name,
        __config__=ConfigDict(extra="forbid"),
        **model_fields,
    )


__all__ = [
    "FieldDef",
    "FIELD_TYPES",
    "normalize_field",
    "field_annotation",
    "enum_annotation",
    "object_model",
]
