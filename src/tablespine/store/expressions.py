"""
Evaluator for the condition and update expressions the mapper emits.

Used by :class:`~tablespine.store.memory.InMemoryStore` so key conditions,
filters, transaction conditions and update expressions behave the way the
real store applies them.

Supported grammar:
    ::

        condition  : or_expr
        or_expr    : and_expr ("OR" and_expr)*
        and_expr   : not_expr ("AND" not_expr)*
        not_expr   : "NOT" not_expr | primary
        primary    : "(" condition ")"
                   | "begins_with" "(" operand "," operand ")"
                   | "attribute_exists" "(" path ")"
                   | "attribute_not_exists" "(" path ")"
                   | operand comparator operand
                   | operand "IN" "(" operand ("," operand)* ")"
        comparator : "=" | "<>" | "<" | "<=" | ">" | ">="
        operand    : "#name" | ":value"

        update     : ("SET" path "=" operand ("," path "=" operand)*)?
                     ("REMOVE" path ("," path)*)?

Parsing errors raise :class:`ExpressionSyntaxError`.

Tags:
    expressions, parser, evaluator, in-memory, tablespine
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

Predicate = Callable[[Mapping[str, Any]], bool]
Resolver = Callable[[Mapping[str, Any]], Any]

_MISSING = object()

_TOKEN = re.compile(
    r"\s*(?:"
    r"(?P<name>#[A-Za-z0-9_]+)"
    r"|(?P<value>:[A-Za-z0-9_]+)"
    r"|(?P<op><>|<=|>=|=|<|>)"
    r"|(?P<punct>[(),])"
    r"|(?P<word>[A-Za-z_][A-Za-z0-9_]*)"
    r")"
)

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": lambda a, b: a == b,
    "<>": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}


class ExpressionSyntaxError(ValueError):
    """An expression outside the supported grammar."""


@dataclass
class _Token:
    kind: str
    text: str


def tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    stripped = expression.rstrip()
    while position < len(stripped):
        match = _TOKEN.match(stripped, position)
        if match is None or match.end() == position:
            raise ExpressionSyntaxError(
                f"Unexpected input at {position}: {stripped[position:position + 20]!r}"
            )
        kind = match.lastgroup or ""
        tokens.append(_Token(kind, match.group(kind)))
        position = match.end()
    return tokens


class _Parser:
    def __init__(
        self,
        expression: str,
        names: Mapping[str, str],
        values: Mapping[str, Any],
    ) -> None:
        self.tokens = tokenize(expression)
        self.position = 0
        self.names = names
        self.values = values

    # -- Token helpers -----------------------------------------------------

    def peek(self) -> _Token | None:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def next(self) -> _Token:
        token = self.peek()
        if token is None:
            raise ExpressionSyntaxError("Unexpected end of expression")
        self.position += 1
        return token

    def accept_word(self, word: str) -> bool:
        token = self.peek()
        if token is not None and token.kind == "word" and token.text.upper() == word:
            self.position += 1
            return True
        return False

    def expect(self, text: str) -> None:
        token = self.next()
        if token.text != text:
            raise ExpressionSyntaxError(f"Expected {text!r}, got {token.text!r}")

    def done(self) -> bool:
        return self.position >= len(self.tokens)

    # -- Operands ----------------------------------------------------------

    def path(self) -> str:
        token = self.next()
        if token.kind != "name":
            raise ExpressionSyntaxError(f"Expected attribute name, got {token.text!r}")
        if token.text not in self.names:
            raise ExpressionSyntaxError(f"Undefined attribute name placeholder {token.text}")
        return self.names[token.text]

    def operand(self) -> Resolver:
        token = self.peek()
        if token is not None and token.kind == "name":
            alias = self.path()
            return lambda item: item.get(alias, _MISSING)
        token = self.next()
        if token.kind != "value":
            raise ExpressionSyntaxError(f"Expected operand, got {token.text!r}")
        if token.text not in self.values:
            raise ExpressionSyntaxError(f"Undefined value placeholder {token.text}")
        value = self.values[token.text]
        return lambda item: value

    # -- Conditions --------------------------------------------------------

    def condition(self) -> Predicate:
        left = self.and_expr()
        while self.accept_word("OR"):
            right = self.and_expr()
            left = (lambda a, b: lambda item: a(item) or b(item))(left, right)
        return left

    def and_expr(self) -> Predicate:
        left = self.not_expr()
        while self.accept_word("AND"):
            right = self.not_expr()
            left = (lambda a, b: lambda item: a(item) and b(item))(left, right)
        return left

    def not_expr(self) -> Predicate:
        if self.accept_word("NOT"):
            inner = self.not_expr()
            return lambda item: not inner(item)
        return self.primary()

    def primary(self) -> Predicate:
        token = self.peek()
        if token is None:
            raise ExpressionSyntaxError("Unexpected end of expression")

        if token.text == "(":
            self.next()
            inner = self.condition()
            self.expect(")")
            return inner

        if token.kind == "word":
            function = token.text.lower()
            self.next()
            self.expect("(")
            if function == "begins_with":
                subject = self.operand()
                self.expect(",")
                prefix = self.operand()
                self.expect(")")
                return lambda item: _begins_with(subject(item), prefix(item))
            if function in ("attribute_exists", "attribute_not_exists"):
                alias = self.path()
                self.expect(")")
                if function == "attribute_exists":
                    return lambda item: alias in item
                return lambda item: alias not in item
            raise ExpressionSyntaxError(f"Unsupported function {token.text!r}")

        left = self.operand()
        if self.accept_word("IN"):
            self.expect("(")
            candidates = [self.operand()]
            while self.peek() is not None and self.peek().text == ",":  # type: ignore[union-attr]
                self.next()
                candidates.append(self.operand())
            self.expect(")")
            return lambda item: _in(left(item), [c(item) for c in candidates])

        token = self.next()
        if token.kind != "op":
            raise ExpressionSyntaxError(f"Expected comparator, got {token.text!r}")
        compare = _COMPARATORS[token.text]
        right = self.operand()
        return lambda item: _compare(compare, left(item), right(item))

    # -- Updates -----------------------------------------------------------

    def update(self) -> tuple[list[tuple[str, Resolver]], list[str]]:
        sets: list[tuple[str, Resolver]] = []
        removes: list[str] = []
        while not self.done():
            if self.accept_word("SET"):
                while True:
                    alias = self.path()
                    self.expect("=")
                    sets.append((alias, self.operand()))
                    if self.peek() is not None and self.peek().text == ",":  # type: ignore[union-attr]
                        self.next()
                        continue
                    break
            elif self.accept_word("REMOVE"):
                removes.append(self.path())
                while self.peek() is not None and self.peek().text == ",":  # type: ignore[union-attr]
                    self.next()
                    removes.append(self.path())
            else:
                raise ExpressionSyntaxError(f"Unexpected token {self.next().text!r} in update")
        if not sets and not removes:
            raise ExpressionSyntaxError("Empty update expression")
        return sets, removes


def _begins_with(subject: Any, prefix: Any) -> bool:
    return isinstance(subject, str) and isinstance(prefix, str) and subject.startswith(prefix)


def _in(subject: Any, candidates: list[Any]) -> bool:
    return subject is not _MISSING and subject in candidates


def _compare(compare: Callable[[Any, Any], bool], left: Any, right: Any) -> bool:
    if left is _MISSING or right is _MISSING:
        return False
    try:
        return compare(left, right)
    except TypeError:
        return False


def compile_condition(
    expression: str,
    names: Mapping[str, str] | None = None,
    values: Mapping[str, Any] | None = None,
) -> Predicate:
    """Parse ``expression`` into a predicate over raw items."""
    parser = _Parser(expression, names or {}, values or {})
    predicate = parser.condition()
    if not parser.done():
        raise ExpressionSyntaxError(
            f"Unexpected trailing input {parser.next().text!r} in {expression!r}"
        )
    return predicate


def apply_update(
    item: Mapping[str, Any],
    expression: str,
    names: Mapping[str, str] | None = None,
    values: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Return a copy of ``item`` with a SET/REMOVE expression applied."""
    parser = _Parser(expression, names or {}, values or {})
    sets, removes = parser.update()
    updated = dict(item)
    for alias, resolve in sets:
        value = resolve(item)
        if value is _MISSING:
            raise ExpressionSyntaxError(f"SET {alias} reads a missing attribute")
        updated[alias] = value
    for alias in removes:
        updated.pop(alias, None)
    return updated


__all__ = [
    "ExpressionSyntaxError",
    "tokenize",
    "compile_condition",
    "apply_update",
]
