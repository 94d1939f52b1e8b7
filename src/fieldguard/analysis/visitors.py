from __future__ import annotations

import ast
from dataclasses import dataclass, field

from fieldguard.analysis.model import Symbol

MODULE_SCOPE = "<module>"

FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef


class ParentAnnotator(ast.NodeVisitor):
    def __init__(self) -> None:
        self.parents: dict[ast.AST, ast.AST] = {}

    def generic_visit(self, node: ast.AST) -> None:
        for child in ast.iter_child_nodes(node):
            self.parents[child] = node
            self.visit(child)


@dataclass
class ScopeInfo:
    node: ast.AST
    qualname: str
    kind: str
    parent: ScopeInfo | None = None
    bindings: dict[str, list[ast.AST]] = field(default_factory=dict)
    globals: set[str] = field(default_factory=set)
    nonlocals: set[str] = field(default_factory=set)

    def bind(self, name: str, node: ast.AST) -> None:
        self.bindings.setdefault(name, []).append(node)


class ScopeCollector(ast.NodeVisitor):
    """Record every scope of a module and the names each scope binds.

    Binding nodes are kept in source order: ``ast.arg`` for parameters, the
    ``ast.Name`` store/del node for assignment targets, ``ast.alias`` for
    imports, the definition node for ``def``/``class`` and the handler for
    ``except ... as``.
    """

    def __init__(self) -> None:
        self.scopes: dict[str, ScopeInfo] = {}
        self.scope_of_node: dict[ast.AST, ScopeInfo] = {}
        self.name_scopes: dict[ast.Name, ScopeInfo] = {}
        self.arg_owner: dict[ast.arg, ast.AST] = {}
        self._stack: list[ScopeInfo] = []

    @property
    def current(self) -> ScopeInfo:
        return self._stack[-1]

    def _push(self, node: ast.AST, label: str, kind: str) -> ScopeInfo:
        parent = self._stack[-1] if self._stack else None
        if parent is None or parent.kind == "module":
            qualname = label
        else:
            qualname = f"{parent.qualname}.{label}"
        scope = ScopeInfo(node=node, qualname=qualname, kind=kind, parent=parent)
        self.scopes[qualname] = scope
        self.scope_of_node[node] = scope
        self._stack.append(scope)
        return scope

    def _bind(self, name: str, node: ast.AST) -> None:
        scope = self.current
        if name in scope.nonlocals:
            return
        if name in scope.globals:
            scope = self._stack[0]
        scope.bind(name, node)

    def visit_Module(self, node: ast.Module) -> None:
        self._push(node, MODULE_SCOPE, "module")
        self.generic_visit(node)
        self._stack.pop()

    def _visit_arguments_outside(self, args: ast.arguments) -> None:
        for default in [*args.defaults, *args.kw_defaults]:
            if default is not None:
                self.visit(default)
        for arg in _all_args(args):
            if arg.annotation is not None:
                self.visit(arg.annotation)

    def _bind_arguments(self, owner: ast.AST, args: ast.arguments) -> None:
        for arg in _all_args(args):
            self.arg_owner[arg] = owner
            self._bind(arg.arg, arg)

    def _visit_function(self, node: FunctionNode) -> None:
        self._bind(node.name, node)
        for decorator in node.decorator_list:
            self.visit(decorator)
        self._visit_arguments_outside(node.args)
        if node.returns is not None:
            self.visit(node.returns)
        self._push(node, f"{node.name}@{node.lineno}", "function")
        self._bind_arguments(node, node.args)
        for stmt in node.body:
            self.visit(stmt)
        self._stack.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self._visit_arguments_outside(node.args)
        self._push(node, f"<lambda>@{node.lineno}:{node.col_offset}", "function")
        self._bind_arguments(node, node.args)
        self.visit(node.body)
        self._stack.pop()

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._bind(node.name, node)
        for decorator in node.decorator_list:
            self.visit(decorator)
        for base in node.bases:
            self.visit(base)
        for keyword in node.keywords:
            self.visit(keyword)
        self._push(node, f"{node.name}@{node.lineno}", "class")
        for stmt in node.body:
            self.visit(stmt)
        self._stack.pop()

    def visit_Name(self, node: ast.Name) -> None:
        self.name_scopes[node] = self.current
        if isinstance(node.ctx, (ast.Store, ast.Del)):
            self._bind(node.id, node)

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            local = alias.asname or alias.name.split(".")[0]
            self._bind(local, alias)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        for alias in node.names:
            if alias.name == "*":
                continue
            self._bind(alias.asname or alias.name, alias)

    def visit_Global(self, node: ast.Global) -> None:
        self.current.globals.update(node.names)

    def visit_Nonlocal(self, node: ast.Nonlocal) -> None:
        self.current.nonlocals.update(node.names)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name:
            self._bind(node.name, node)
        self.generic_visit(node)


class ScopeIndex:
    """Variable identities for one module: maps ``Name`` nodes to ``Symbol``."""

    def __init__(self, tree: ast.AST) -> None:
        annotator = ParentAnnotator()
        annotator.visit(tree)
        self.parents = annotator.parents
        collector = ScopeCollector()
        collector.visit(tree)
        self.scopes = collector.scopes
        self.scope_of_node = collector.scope_of_node
        self.name_scopes = collector.name_scopes
        self.arg_owner = collector.arg_owner

    @property
    def module(self) -> ScopeInfo | None:
        return self.scopes.get(MODULE_SCOPE)

    def symbol_for(self, node: ast.Name) -> Symbol | None:
        scope = self.name_scopes.get(node)
        if scope is None:
            return None
        return self.resolve(node.id, scope)

    def resolve(self, name: str, scope: ScopeInfo) -> Symbol | None:
        found = self._binding_scope(name, scope)
        if found is None:
            return None
        return Symbol(scope=found.qualname, name=name)

    def _binding_scope(self, name: str, scope: ScopeInfo) -> ScopeInfo | None:
        if name in scope.globals:
            module = self.module
            if module is not None and name in module.bindings:
                return module
            return None
        current: ScopeInfo | None = scope
        if name in scope.nonlocals:
            current = scope.parent
        while current is not None:
            # Class bodies are not visible from the functions they contain.
            if current.kind == "class" and current is not scope:
                current = current.parent
                continue
            if name in current.bindings:
                return current
            current = current.parent
        return None

    def bindings(self, symbol: Symbol) -> list[ast.AST]:
        scope = self.scopes.get(symbol.scope)
        if scope is None:
            return []
        return list(scope.bindings.get(symbol.name, []))

    def parameter_symbol(self, fn: ast.AST, name: str) -> Symbol | None:
        scope = self.scope_of_node.get(fn)
        if scope is None or name not in scope.bindings:
            return None
        return Symbol(scope=scope.qualname, name=name)

    def enclosing_class(self, node: ast.AST) -> ast.ClassDef | None:
        parent = self.parents.get(node)
        if isinstance(parent, ast.ClassDef):
            return parent
        return None


def _all_args(args: ast.arguments) -> list[ast.arg]:
    out = [*args.posonlyargs, *args.args]
    if args.vararg is not None:
        out.append(args.vararg)
    out.extend(args.kwonlyargs)
    if args.kwarg is not None:
        out.append(args.kwarg)
    return out
