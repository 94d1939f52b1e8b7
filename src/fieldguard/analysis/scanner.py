from __future__ import annotations

import ast
from typing import Iterator

from fieldguard.analysis.aliases import AliasTracker
from fieldguard.analysis.model import FieldAccessPath, MutationCandidate, Position
from fieldguard.analysis.selectors import SelectorResolver
from fieldguard.analysis.semantic import MUTABLE_REFERENCE_TYPES, SemanticModel

_ATTRIBUTE_SETTERS = frozenset({"setattr", "delattr"})
_OBJECT_SETTERS = frozenset({"__setattr__", "__delattr__"})


def _source_order(node: ast.AST) -> Iterator[ast.AST]:
    yield node
    for child in ast.iter_child_nodes(node):
        yield from _source_order(child)


def _flatten(target: ast.AST) -> Iterator[ast.AST]:
    if isinstance(target, (ast.Tuple, ast.List)):
        for elt in target.elts:
            yield from _flatten(elt)
    elif isinstance(target, ast.Starred):
        yield from _flatten(target.value)
    else:
        yield target


class MutationScanner:
    """Yield every expression of a module that writes to a field.

    A scanner is single use: ``scan`` binds call arguments to callee
    parameters first, then walks the module once.
    """

    def __init__(
        self,
        model: SemanticModel,
        resolver: SelectorResolver,
        aliases: AliasTracker,
    ) -> None:
        self.model = model
        self.resolver = resolver
        self.aliases = aliases
        self._consumed = False

    def scan(self) -> Iterator[MutationCandidate]:
        if self._consumed:
            return
        self._consumed = True
        self._bind_call_arguments()
        for node in _source_order(self.model.tree):
            yield from self._visit(node)

    def _bind_call_arguments(self) -> None:
        scopes = self.model.scopes
        for node in ast.walk(self.model.tree):
            if not isinstance(node, ast.Call):
                continue
            for argument, param, fn in self.model.call_parameters(node):
                path = self.resolver.resolve(argument)
                if path is None:
                    continue
                symbol = scopes.parameter_symbol(fn, param.arg)
                if symbol is not None:
                    self.aliases.bind(symbol, path)

    def _visit(self, node: ast.AST) -> Iterator[MutationCandidate]:
        if isinstance(node, ast.Assign):
            self.aliases.observe(node)
            for target in node.targets:
                yield from self._targets(target, "assign")
        elif isinstance(node, ast.AnnAssign):
            if node.value is not None:
                self.aliases.observe(node)
                yield from self._targets(node.target, "assign")
        elif isinstance(node, ast.Delete):
            for target in node.targets:
                yield from self._targets(target, "delete")
        elif isinstance(node, (ast.For, ast.AsyncFor)):
            yield from self._targets(node.target, "assign")
        elif isinstance(node, (ast.With, ast.AsyncWith)):
            for item in node.items:
                if item.optional_vars is not None:
                    yield from self._targets(item.optional_vars, "assign")
        elif isinstance(node, ast.AugAssign):
            path = self._target_path(node.target)
            if path is None and isinstance(node.target, ast.Name):
                path = self._augmented_alias(node.target)
            yield MutationCandidate(node.target, path, "augassign")
        elif isinstance(node, ast.Call):
            setter = self._setattr_candidate(node)
            if setter is not None:
                yield setter
            yield from self._call_arguments(node)

    def _targets(self, target: ast.AST, kind: str) -> Iterator[MutationCandidate]:
        for leaf in _flatten(target):
            yield MutationCandidate(leaf, self._target_path(leaf), kind)

    def _target_path(self, target: ast.AST) -> FieldAccessPath | None:
        path = self.resolver.resolve(target)
        if path is not None:
            return path
        # A bare name is a rebinding; only indexing writes through an alias.
        if not isinstance(target, ast.Subscript):
            return None
        root: ast.AST = target
        while isinstance(root, ast.Subscript):
            root = root.value
        if not isinstance(root, ast.Name):
            return None
        symbol = self.model.symbol_for(root)
        if symbol is None:
            return None
        return self.aliases.lookup(symbol)

    def _augmented_alias(self, target: ast.Name) -> FieldAccessPath | None:
        # p += [1] extends a list in place; an int alias is only rebound.
        symbol = self.model.symbol_for(target)
        path = self.aliases.lookup(symbol) if symbol is not None else None
        if path is None:
            return None
        layout = self.model.index.classes.get(path.owner_type)
        slot = layout.slot(path.field_name) if layout is not None else None
        if slot is None or slot.type_hint not in MUTABLE_REFERENCE_TYPES:
            return None
        return path

    def _setattr_candidate(self, call: ast.Call) -> MutationCandidate | None:
        func = call.func
        args = call.args
        if isinstance(func, ast.Name) and func.id in _ATTRIBUTE_SETTERS:
            if not self.model.is_builtin(func, func.id):
                return None
        elif isinstance(func, ast.Attribute) and func.attr in _OBJECT_SETTERS:
            if not isinstance(func.value, ast.Name) or not self.model.is_builtin(func.value, "object"):
                return None
        else:
            return None
        if len(args) < 2:
            return None
        name = args[1]
        if not isinstance(name, ast.Constant) or not isinstance(name.value, str):
            return None
        receiver = self.model.type_of(args[0])
        path = None
        if receiver is not None:
            path = self.model.attribute_path(receiver, name.value, Position.of(call))
        return MutationCandidate(call, path, "setattr")

    def _call_arguments(self, call: ast.Call) -> Iterator[MutationCandidate]:
        for argument, param, _fn in self.model.call_parameters(call):
            if not self.model.accepts_reference(param):
                continue
            path = self.resolver.resolve(argument)
            if path is not None:
                yield MutationCandidate(argument, path, "call-argument")
