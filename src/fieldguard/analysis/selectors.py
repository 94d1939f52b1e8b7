from __future__ import annotations

import ast

from fieldguard.analysis.model import FieldAccessPath
from fieldguard.analysis.semantic import SemanticModel


def unwrap_selector(expr: ast.AST) -> ast.Attribute | None:
    """Strip indexing and star-unpacking down to the attribute access they wrap."""
    while isinstance(expr, (ast.Subscript, ast.Starred)):
        expr = expr.value
    if isinstance(expr, ast.Attribute):
        return expr
    return None


class SelectorResolver:
    def __init__(self, model: SemanticModel) -> None:
        self.model = model

    def resolve(self, expr: ast.AST) -> FieldAccessPath | None:
        selector = unwrap_selector(expr)
        if selector is None:
            return None
        return self.model.field_path(selector)
