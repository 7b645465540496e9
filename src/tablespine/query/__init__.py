"""Expression compilation: key/filter conditions and update expressions."""

from tablespine.query.attributes import ExpressionAttributes
from tablespine.query.compiler import (
    BEGINS_WITH,
    OR_KEY,
    CompiledQuery,
    QueryCompiler,
    compile_query,
)
from tablespine.query.includes import included_relationships_filter
from tablespine.query.update import build_update_expression

__all__ = [
    "ExpressionAttributes",
    "QueryCompiler",
    "CompiledQuery",
    "compile_query",
    "OR_KEY",
    "BEGINS_WITH",
    "build_update_expression",
    "included_relationships_filter",
]
