"""
Key & filter compiler.

Turns a declarative key condition plus an optional filter into the store's
condition grammar, attribute-name placeholders and bound values.

Grammar:
    ::

        key_condition : {name: condition, ...}                 ANDed
        filter        : {name: condition, ...}                 implicit AND
                      | {"$or": [filter, ...], name: ..., ...}  (OR) AND (AND)
        condition     : scalar                   -> #alias = :alias1
                      | [v1, v2, ...]            -> #alias IN (:alias1, :alias2)
                      | {"$beginsWith": prefix}  -> begins_with(#alias, :alias1)

    OR branches with more than one condition are parenthesized; single
    condition branches are not::

        {"$or": [{"a": 1, "b": 2}, {"c": 3}]}
            -> (#a = :a1 AND #b = :b1) OR #c = :c1

Names are entity attribute names (or table default names such as
``foreign_entity_type``) and compile to their store aliases. Equality and
``IN`` values are encoded through the attribute codec; ``$beginsWith``
prefixes are bound as given.

Anything outside the grammar raises
:class:`~tablespine.core.errors.InvalidQueryError` before any I/O.

Tags:
    query, compiler, expressions, dynamodb, tablespine
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from tablespine.codec.attribute import to_store_value
from tablespine.core.errors import InvalidQueryError, ValidationError
from tablespine.core.protocols import QueryRequest
from tablespine.metadata.definitions import PARTITION_KEY, AttributeDefinition, EntityDefinition
from tablespine.query.attributes import ExpressionAttributes

OR_KEY = "$or"
BEGINS_WITH = "$beginsWith"


@dataclass
class CompiledQuery:
    """Output of :meth:`QueryCompiler.compile`."""

    key_condition: str
    filter_expression: str | None = None
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)
    index_name: str | None = None

    def to_request(self, table: str, *, consistent_read: bool = False) -> QueryRequest:
        return QueryRequest(
            table=table,
            key_condition=self.key_condition,
            names=dict(self.names),
            values=dict(self.values),
            filter_expression=self.filter_expression,
            index_name=self.index_name,
            consistent_read=consistent_read,
        )


@dataclass
class _Fragment:
    expression: str
    conditions: int


class QueryCompiler:
    """Compiles key conditions and filters for one entity.

    Placeholder sequences are scoped to the instance: compiling several
    conditions on the same attribute never reuses a value placeholder.
    """

    def __init__(
        self,
        entity: EntityDefinition,
        attributes: ExpressionAttributes | None = None,
    ) -> None:
        self.entity = entity
        self.attributes = attributes or ExpressionAttributes()

    def compile(
        self,
        key_condition: Mapping[str, Any],
        filter: Mapping[str, Any] | None = None,
        index_name: str | None = None,
    ) -> CompiledQuery:
        if not key_condition:
            raise InvalidQueryError("A key condition needs at least one attribute")
        if index_name is None and PARTITION_KEY not in key_condition:
            raise InvalidQueryError(
                f"Key condition must include the partition key '{PARTITION_KEY}' "
                "unless an index is named"
            )

        key = self._and_group(key_condition)
        filter_fragment = self._filter(filter) if filter else None

        return CompiledQuery(
            key_condition=key.expression,
            filter_expression=filter_fragment.expression if filter_fragment else None,
            names=dict(self.attributes.names),
            values=dict(self.attributes.values),
            index_name=index_name,
        )

    def compile_filter(self, filter: Mapping[str, Any]) -> str | None:
        fragment = self._filter(filter)
        return fragment.expression if fragment else None

    # -- Filter tree -----------------------------------------------------

    def _filter(self, filter: Mapping[str, Any]) -> _Fragment | None:
        if not isinstance(filter, Mapping):
            raise InvalidQueryError(f"A filter must be a mapping, got {type(filter).__name__}")

        and_part = {k: v for k, v in filter.items() if k != OR_KEY}
        or_fragment = self._or_group(filter[OR_KEY]) if OR_KEY in filter else None
        and_fragment = self._and_group(and_part) if and_part else None

        if or_fragment and and_fragment:
            return _Fragment(
                f"({or_fragment.expression}) AND ({and_fragment.expression})",
                or_fragment.conditions + and_fragment.conditions,
            )
        return or_fragment or and_fragment

    def _or_group(self, branches: Any) -> _Fragment | None:
        if not isinstance(branches, (list, tuple)):
            raise InvalidQueryError(f"'{OR_KEY}' takes a list of filters")

        parts: list[str] = []
        conditions = 0
        for branch in branches:
            if not isinstance(branch, Mapping) or not branch:
                raise InvalidQueryError(f"Each '{OR_KEY}' branch must be a non-empty mapping")
            fragment = self._filter(branch)
            if fragment is None:
                continue
            parts.append(
                f"({fragment.expression})" if fragment.conditions > 1 else fragment.expression
            )
            conditions += fragment.conditions

        if not parts:
            return None
        return _Fragment(" OR ".join(parts), conditions)

    def _and_group(self, conditions: Mapping[str, Any]) -> _Fragment:
        parts = [self._condition(name, value) for name, value in conditions.items()]
        return _Fragment(" AND ".join(parts), len(parts))

    # -- Single conditions -------------------------------------------------

    def _condition(self, name: str, value: Any) -> str:
        if name.startswith("$"):
            raise InvalidQueryError(f"Unsupported operator '{name}'")
        attribute = self._resolve(name)

        if isinstance(value, (list, tuple)):
            if not value:
                raise InvalidQueryError(f"'{name}' IN condition needs at least one value")
            return self.attributes.is_in(
                attribute.alias, [self._encode(attribute, v) for v in value]
            )
        if isinstance(value, Mapping):
            if set(value) != {BEGINS_WITH}:
                raise InvalidQueryError(
                    f"Unsupported operator(s) {sorted(value)} for '{name}'; "
                    f"only '{BEGINS_WITH}' is supported"
                )
            return self.attributes.begins_with(attribute.alias, value[BEGINS_WITH])
        return self.attributes.equals(attribute.alias, self._encode(attribute, value))

    def _resolve(self, name: str) -> AttributeDefinition:
        attribute = self.entity.attributes.get(name)
        if attribute is None:
            attribute = self.entity.table.default_attributes.get(name)
        if attribute is None:
            raise InvalidQueryError(
                f"'{name}' is not an attribute of '{self.entity.name}'"
            )
        return attribute

    @staticmethod
    def _encode(attribute: AttributeDefinition, value: Any) -> Any:
        if value is None:
            raise InvalidQueryError(f"Cannot compare '{attribute.name}' to null")
        try:
            return to_store_value(attribute, value)
        except ValidationError as exc:
            raise InvalidQueryError(
                f"Invalid value for '{attribute.name}': {exc.message}", cause=exc
            ) from exc


def compile_query(
    entity: EntityDefinition,
    key_condition: Mapping[str, Any],
    filter: Mapping[str, Any] | None = None,
    index_name: str | None = None,
) -> CompiledQuery:
    """One-shot helper: fresh compiler, fresh placeholder sequences."""
    return QueryCompiler(entity).compile(key_condition, filter, index_name)


__all__ = ["OR_KEY", "BEGINS_WITH", "CompiledQuery", "QueryCompiler", "compile_query"]
