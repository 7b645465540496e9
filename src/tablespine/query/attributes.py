"""Expression attribute names and values with collision-free placeholders."""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Any

_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


class ExpressionAttributes:
    """Collects ``#name`` and ``:value`` placeholders for one request.

    Value placeholders are ``:{alias}{n}`` where ``n`` counts per alias from 1,
    so binding the same attribute twice yields ``:status1`` and ``:status2``.
    A sequence step that lands on a placeholder already bound (``line`` on its
    11th use and ``line1`` on its 1st both spell ``:line11``) is skipped.
    Name placeholders get a ``_{n}`` suffix when two aliases sanitize to the
    same token. One instance must back every expression of a single request.
    """

    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}
        self._sequences: defaultdict[str, int] = defaultdict(int)
        self._placeholders: dict[str, str] = {}

    @staticmethod
    def _token(alias: str) -> str:
        return _UNSAFE.sub("_", alias)

    def name(self, alias: str) -> str:
        placeholder = self._placeholders.get(alias)
        if placeholder is not None:
            return placeholder
        base = f"#{self._token(alias)}"
        placeholder = base
        suffix = 1
        while placeholder in self.names:
            suffix += 1
            placeholder = f"{base}_{suffix}"
        self._placeholders[alias] = placeholder
        self.names[placeholder] = alias
        return placeholder

    def value(self, alias: str, value: Any) -> str:
        token = self._token(alias)
        while True:
            self._sequences[token] += 1
            placeholder = f":{token}{self._sequences[token]}"
            if placeholder not in self.values:
                break
        self.values[placeholder] = value
        return placeholder

    # -- Condition helpers -------------------------------------------------

    def equals(self, alias: str, value: Any) -> str:
        return f"{self.name(alias)} = {self.value(alias, value)}"

    def begins_with(self, alias: str, prefix: Any) -> str:
        return f"begins_with({self.name(alias)}, {self.value(alias, prefix)})"

    def is_in(self, alias: str, values: list[Any]) -> str:
        placeholders = ", ".join(self.value(alias, v) for v in values)
        return f"{self.name(alias)} IN ({placeholders})"

    def exists(self, alias: str) -> str:
        return f"attribute_exists({self.name(alias)})"

    def not_exists(self, alias: str) -> str:
        return f"attribute_not_exists({self.name(alias)})"


__all__ = ["ExpressionAttributes"]
