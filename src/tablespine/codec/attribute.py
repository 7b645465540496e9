"""
Attribute codecs: entity value <-> store-native value.

Each attribute definition carries one codec. Codecs validate through a
pydantic ``TypeAdapter`` built from the attribute's declared shape, then
convert:

    ┌──────────────┬─────────────────────────┬──────────────────────────┐
    │ kind         │ entity value            │ store value              │
    ├──────────────┼─────────────────────────┼──────────────────────────┤
    │ string       │ str                     │ str                      │
    │ number       │ int | float             │ int | float              │
    │ boolean      │ bool                    │ bool                     │
    │ enum         │ one of the values       │ str                      │
    │ date         │ datetime                │ ISO-8601 str             │
    │ object       │ dict (nullable -> None) │ dict (None fields absent)│
    │ array        │ list                    │ list                     │
    │ foreign_key  │ str                     │ str                      │
    └──────────────┴─────────────────────────┴──────────────────────────┘

Failures raise :class:`~tablespine.core.errors.ValidationError` before any
store call. ``None`` is handled by :func:`to_store_value` /
:func:`to_entity_value`, never by the codecs.

Tags:
    codec, serialization, pydantic, validation, tablespine
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from tablespine.codec.shapes import FieldDef, enum_annotation, field_annotation, object_model
from tablespine.core.errors import NullConstraintViolationError, ValidationError

if TYPE_CHECKING:
    from tablespine.metadata.definitions import AttributeDefinition


class AttributeCodec:
    """Validate and pass values through unchanged (primitives, enums, keys).

    Entity-side values are validated strictly, so a date attribute rejects
    epoch integers and bare date strings. Store-side values are decoded
    leniently, which lets nested dates come back from their ISO strings.
    """

    def __init__(self, kind: str, annotation: Any) -> None:
        self.kind = kind
        self.annotation = annotation
        self._adapter: TypeAdapter[Any] = TypeAdapter(annotation)

    def validate(self, value: Any, *, strict: bool = False) -> Any:
        return self._adapter.validate_python(value, strict=strict)

    def to_store(self, value: Any) -> Any:
        return self._adapter.dump_python(
            self.validate(value, strict=True), mode="json", exclude_none=True
        )

    def to_entity(self, value: Any) -> Any:
        return self._adapter.dump_python(self.validate(value), mode="python")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r})"


class DateCodec(AttributeCodec):
    """``datetime`` on the entity, ISO-8601 string in the store."""

    def __init__(self) -> None:
        super().__init__("date", datetime)

    def to_store(self, value: Any) -> str:
        return self.validate(value, strict=True).isoformat()

    def to_entity(self, value: Any) -> datetime:
        return self.validate(value)


# -- Factories ----------------------------------------------------------------


def string_codec() -> AttributeCodec:
    return AttributeCodec("string", field_annotation("string"))


def number_codec() -> AttributeCodec:
    return AttributeCodec("number", field_annotation("number"))


def boolean_codec() -> AttributeCodec:
    return AttributeCodec("boolean", field_annotation("boolean"))


def date_codec() -> DateCodec:
    return DateCodec()


def enum_codec(values: list[str] | tuple[str, ...]) -> AttributeCodec:
    return AttributeCodec("enum", enum_annotation(values))


def object_codec(name: str, fields: Mapping[str, FieldDef]) -> AttributeCodec:
    return AttributeCodec("object", object_model(name, fields))


def array_codec(name: str, items: FieldDef) -> AttributeCodec:
    return AttributeCodec("array", field_annotation({"type": "array", "items": items}, name=name))


def foreign_key_codec() -> AttributeCodec:
    return AttributeCodec("foreign_key", field_annotation("string"))


# -- Attribute-level conversion -----------------------------------------------


def _invalid(attribute: AttributeDefinition, value: Any, exc: Exception) -> ValidationError:
    if isinstance(exc, PydanticValidationError):
        errors = exc.errors()
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or attribute.name}: {err['msg']}"
            for err in errors
        )
    else:
        detail = str(exc)
    return ValidationError(
        f"Invalid value for attribute '{attribute.name}': {detail}",
        attribute=attribute.name,
        cause=exc,
    )


def to_store_value(attribute: AttributeDefinition, value: Any) -> Any:
    """Encode an entity value. ``None`` means absent and is only allowed when nullable."""
    if value is None:
        if attribute.nullable:
            return None
        raise NullConstraintViolationError(
            f"Attribute '{attribute.name}' is not nullable",
            attribute=attribute.name,
        )
    try:
        if attribute.validator is not None:
            value = attribute.validator(value)
        if attribute.codec is None:
            return value
        return attribute.codec.to_store(value)
    except (PydanticValidationError, ValueError, TypeError) as exc:
        raise _invalid(attribute, value, exc) from exc


def to_entity_value(attribute: AttributeDefinition, value: Any) -> Any:
    """Decode a store value. Absent and null both decode to ``None``."""
    if value is None or attribute.codec is None:
        return value
    try:
        return attribute.codec.to_entity(value)
    except (PydanticValidationError, ValueError, TypeError) as exc:
        raise _invalid(attribute, value, exc) from exc


__all__ = [
    "AttributeCodec",
    "DateCodec",
    "string_codec",
    "number_codec",
    "boolean_codec",
    "date_codec",
    "enum_codec",
    "object_codec",
    "array_codec",
    "foreign_key_codec",
    "to_store_value",
    "to_entity_value",
]
