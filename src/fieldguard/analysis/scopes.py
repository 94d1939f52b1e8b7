from __future__ import annotations

import ast
from dataclasses import dataclass

from fieldguard.analysis.model import Position
from fieldguard.analysis.semantic import is_classmethod, receiver_name


@dataclass(frozen=True)
class MethodSpan:
    owner: str
    start: Position
    end: Position

    def contains(self, position: Position) -> bool:
        return self.start <= position <= self.end

    @property
    def extent(self) -> tuple[int, int]:
        return (self.end.line - self.start.line, self.end.column - self.start.column)


def _node_span(node: ast.AST) -> tuple[Position, Position]:
    start = Position(line=node.lineno, column=node.col_offset)
    end = Position(
        line=getattr(node, "end_lineno", None) or node.lineno,
        column=getattr(node, "end_col_offset", None) or node.col_offset,
    )
    return start, end


class ScopeLocator:
    """Answer which class's method, if any, encloses a source position."""

    def __init__(self, tree: ast.AST) -> None:
        self.spans: list[MethodSpan] = []
        for node in ast.walk(tree):
            if not isinstance(node, ast.ClassDef):
                continue
            for stmt in node.body:
                if not isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    continue
                # static methods and argument-less defs have no receiver
                if receiver_name(stmt) is None and not is_classmethod(stmt):
                    continue
                start, end = _node_span(stmt)
                self.spans.append(MethodSpan(owner=node.name, start=start, end=end))

    def enclosing_method(self, position: Position) -> str | None:
        best: MethodSpan | None = None
        for span in self.spans:
            if not span.contains(position):
                continue
            if best is None or span.extent < best.extent:
                best = span
        return best.owner if best is not None else None
