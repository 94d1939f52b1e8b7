from __future__ import annotations

import ast

from fieldguard.analysis.model import FieldAccessPath, Symbol
from fieldguard.analysis.selectors import SelectorResolver
from fieldguard.analysis.visitors import ScopeIndex


class AliasTracker:
    """Local names that refer to the value held by a field.

    Only the first binding of a name is remembered; a later rebinding to a
    different field is not tracked.
    """

    def __init__(self, scopes: ScopeIndex, resolver: SelectorResolver) -> None:
        self.scopes = scopes
        self.resolver = resolver
        self._bindings: dict[Symbol, FieldAccessPath] = {}

    def observe(self, stmt: ast.Assign | ast.AnnAssign) -> None:
        if isinstance(stmt, ast.Assign):
            if len(stmt.targets) != 1:
                return
            target = stmt.targets[0]
        else:
            target = stmt.target
        value = stmt.value
        if value is None or not isinstance(target, ast.Name):
            return
        path = self.resolver.resolve(value)
        if path is None:
            return
        symbol = self.scopes.symbol_for(target)
        if symbol is not None:
            self.bind(symbol, path)

    def bind(self, symbol: Symbol, path: FieldAccessPath) -> None:
        self._bindings.setdefault(symbol, path)

    def lookup(self, symbol: Symbol) -> FieldAccessPath | None:
        return self._bindings.get(symbol)
