"""SET/REMOVE update expressions.

``None`` means "remove the attribute"; every other value is SET::

    build_update_expression(attrs, {"Name": "Ada", "Nick": None})
    # SET #Name = :Name1 REMOVE #Nick
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from tablespine.query.attributes import ExpressionAttributes


def build_update_expression(
    attributes: ExpressionAttributes, values: Mapping[str, Any]
) -> str:
    """Build an update expression over store aliases, binding into ``attributes``."""
    set_clauses: list[str] = []
    remove_clauses: list[str] = []
    for alias, value in values.items():
        if value is None:
            remove_clauses.append(attributes.name(alias))
        else:
            set_clauses.append(f"{attributes.name(alias)} = {attributes.value(alias, value)}")

    parts: list[str] = []
    if set_clauses:
        parts.append("SET " + ", ".join(set_clauses))
    if remove_clauses:
        parts.append("REMOVE " + ", ".join(remove_clauses))
    if not parts:
        raise ValueError("An update expression needs at least one attribute")
    return " ".join(parts)


__all__ = ["build_update_expression"]
