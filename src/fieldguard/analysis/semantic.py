"""Static type model for one module against a project-wide class index.

The model is deliberately small: it knows the layout of every class in the
analyzed project and types expressions from annotations, constructor calls,
return annotations, receiver parameters and ``isinstance`` narrowing. Anything
it cannot type is reported as ``None`` and the caller drops the expression.
"""
from __future__ import annotations

import ast
from typing import Iterable

from fieldguard.analysis.model import (
    ClassLayout,
    FieldAccessPath,
    FieldSlot,
    Position,
    Symbol,
)
from fieldguard.analysis.visitors import FunctionNode, ScopeIndex

MUTABLE_REFERENCE_TYPES = frozenset(
    {
        "list",
        "dict",
        "set",
        "bytearray",
        "deque",
        "defaultdict",
        "OrderedDict",
        "Counter",
        "List",
        "Dict",
        "Set",
        "Deque",
        "DefaultDict",
        "MutableSequence",
        "MutableMapping",
        "MutableSet",
    }
)

_TRANSPARENT_WRAPPERS = frozenset(
    {"Optional", "Annotated", "Final", "ClassVar", "Required", "NotRequired", "ReadOnly"}
)
_PROPERTY_DECORATORS = frozenset({"property", "cached_property"})
_PROPERTY_ACCESSORS = frozenset({"setter", "getter", "deleter"})


def annotation_head(node: ast.AST | None) -> str | None:
    """Return the outermost type name of an annotation.

    ``Optional[X]``, ``X | None``, ``Annotated[X, ...]`` and string annotations
    are unwrapped; ``list[int]`` yields ``"list"``.
    """
    if node is None:
        return None
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        try:
            parsed = ast.parse(node.value.strip(), mode="eval")
        except SyntaxError:
            return None
        return annotation_head(parsed.body)
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Subscript):
        head = annotation_head(node.value)
        if head in _TRANSPARENT_WRAPPERS:
            inner = node.slice
            if isinstance(inner, ast.Tuple):
                if not inner.elts:
                    return None
                inner = inner.elts[0]
            return annotation_head(inner)
        if head == "Union":
            members = node.slice.elts if isinstance(node.slice, ast.Tuple) else [node.slice]
            return _single_member(members)
        return head
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _single_member(_union_members(node))
    return None


def _union_members(node: ast.AST) -> list[ast.AST]:
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return [*_union_members(node.left), *_union_members(node.right)]
    return [node]


def _single_member(members: list[ast.AST]) -> str | None:
    remaining = [member for member in members if not _is_none(member)]
    if len(remaining) != 1:
        return None
    return annotation_head(remaining[0])


def _is_none(node: ast.AST) -> bool:
    if isinstance(node, ast.Constant) and node.value is None:
        return True
    return isinstance(node, ast.Name) and node.id == "None"


def _base_name(node: ast.AST) -> str | None:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Subscript):
        return _base_name(node.value)
    return None


def _decorator_names(fn: FunctionNode) -> set[str]:
    names: set[str] = set()
    for decorator in fn.decorator_list:
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        name = _base_name(target)
        if name:
            names.add(name)
    return names


def is_staticmethod(fn: FunctionNode) -> bool:
    return "staticmethod" in _decorator_names(fn)


def is_classmethod(fn: FunctionNode) -> bool:
    return "classmethod" in _decorator_names(fn)


def is_property(fn: FunctionNode) -> bool:
    names = _decorator_names(fn)
    return bool(names & (_PROPERTY_DECORATORS | _PROPERTY_ACCESSORS))


def receiver_name(fn: FunctionNode) -> str | None:
    if is_staticmethod(fn) or is_classmethod(fn):
        return None
    positional = [*fn.args.posonlyargs, *fn.args.args]
    if not positional:
        return None
    return positional[0].arg


def _flatten_targets(target: ast.AST) -> Iterable[ast.AST]:
    if isinstance(target, (ast.Tuple, ast.List)):
        for elt in target.elts:
            yield from _flatten_targets(elt)
    elif isinstance(target, ast.Starred):
        yield from _flatten_targets(target.value)
    else:
        yield target


def _value_type_hint(value: ast.AST | None, params: dict[str, str | None]) -> str | None:
    if isinstance(value, ast.Call):
        return _base_name(value.func)
    if isinstance(value, ast.Name):
        return params.get(value.id)
    return None


def _class_layout(node: ast.ClassDef) -> ClassLayout:
    layout = ClassLayout(name=node.name)
    for base in node.bases:
        name = _base_name(base)
        if not name:
            continue
        layout.bases.append(name)
        layout.add_field(FieldSlot(name=name, type_hint=name, embedded=True))
    for stmt in node.body:
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            layout.methods.setdefault(stmt.name, stmt)
            if is_property(stmt):
                layout.properties.add(stmt.name)
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            layout.add_field(FieldSlot(name=stmt.target.id, type_hint=annotation_head(stmt.annotation)))
        elif isinstance(stmt, ast.Assign):
            for target in stmt.targets:
                if not isinstance(target, ast.Name):
                    continue
                if target.id == "__slots__":
                    for slot_name in _slot_names(stmt.value):
                        layout.add_field(FieldSlot(name=slot_name))
                    continue
                layout.add_field(FieldSlot(name=target.id, type_hint=_value_type_hint(stmt.value, {})))
    for stmt in node.body:
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            _collect_receiver_fields(layout, stmt)
    return layout


def _slot_names(value: ast.AST) -> list[str]:
    if isinstance(value, ast.Constant) and isinstance(value.value, str):
        return [value.value]
    if isinstance(value, (ast.Tuple, ast.List, ast.Set)):
        return [
            elt.value
            for elt in value.elts
            if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
        ]
    return []


def _collect_receiver_fields(layout: ClassLayout, method: FunctionNode) -> None:
    receiver = receiver_name(method)
    if receiver is None:
        return
    params = {
        arg.arg: annotation_head(arg.annotation)
        for arg in [*method.args.posonlyargs, *method.args.args, *method.args.kwonlyargs]
    }
    for node in ast.walk(method):
        if isinstance(node, ast.Assign):
            for target in node.targets:
                for leaf in _flatten_targets(target):
                    _record_receiver_field(layout, leaf, receiver, _value_type_hint(node.value, params))
        elif isinstance(node, ast.AnnAssign):
            _record_receiver_field(layout, node.target, receiver, annotation_head(node.annotation))
        elif isinstance(node, ast.AugAssign):
            _record_receiver_field(layout, node.target, receiver, None)


def _record_receiver_field(
    layout: ClassLayout,
    target: ast.AST,
    receiver: str,
    type_hint: str | None,
) -> None:
    if not isinstance(target, ast.Attribute):
        return
    if not isinstance(target.value, ast.Name) or target.value.id != receiver:
        return
    if target.attr in layout.methods:
        return
    layout.add_field(FieldSlot(name=target.attr, type_hint=type_hint, inferred=True))


def collect_layouts(tree: ast.AST) -> dict[str, ClassLayout]:
    layouts: dict[str, ClassLayout] = {}
    for node in ast.walk(tree):
        if isinstance(node, ast.ClassDef) and node.name not in layouts:
            layouts[node.name] = _class_layout(node)
    return layouts


class ProjectIndex:
    """Class layouts of every analyzed module, keyed by simple class name."""

    def __init__(self, classes: dict[str, ClassLayout] | None = None) -> None:
        self.classes: dict[str, ClassLayout] = dict(classes or {})

    @classmethod
    def from_trees(cls, trees: Iterable[ast.AST]) -> ProjectIndex:
        index = cls()
        for tree in trees:
            index.add_tree(tree)
        return index

    def add_tree(self, tree: ast.AST, *, override: bool = False) -> None:
        for name, layout in collect_layouts(tree).items():
            if override or name not in self.classes:
                self.classes[name] = layout

    def with_unit(self, tree: ast.AST) -> ProjectIndex:
        index = ProjectIndex(self.classes)
        index.add_tree(tree, override=True)
        return index

    def __contains__(self, name: object) -> bool:
        return name in self.classes

    def _lookup(self, type_name: str, attribute: str, seen: set[str]) -> tuple[str, str] | None:
        if type_name in seen:
            return None
        seen.add(type_name)
        layout = self.classes.get(type_name)
        if layout is None:
            return None
        if attribute in layout.methods:
            return ("method", type_name)
        own = layout.slot(attribute)
        if own is not None and not own.inferred:
            return ("field", type_name)
        for slot in layout.fields:
            if not slot.embedded or slot.type_hint is None:
                continue
            found = self._lookup(slot.type_hint, attribute, seen)
            if found is not None:
                return found
        # A self.x write only declares x when no base already does.
        if own is not None:
            return ("field", type_name)
        return None

    def owner_of(self, type_name: str, attribute: str) -> str | None:
        """Return the class that owns ``attribute`` when accessed on ``type_name``.

        Methods and properties have no owner in this sense and yield ``None``.
        An attribute that no class in the hierarchy declares belongs to
        ``type_name`` itself.
        """
        if type_name not in self.classes:
            return None
        found = self._lookup(type_name, attribute, set())
        if found is None:
            return type_name
        kind, declaring = found
        if kind == "method":
            return None
        return declaring

    def is_embedded_slot(self, type_name: str, field_name: str) -> bool:
        layout = self.classes.get(type_name)
        if layout is None:
            return False
        slot = layout.slot(field_name)
        return slot is not None and slot.embedded

    def find_method(self, type_name: str, name: str) -> FunctionNode | None:
        found = self._lookup(type_name, name, set())
        if found is None or found[0] != "method":
            return None
        return self.classes[found[1]].methods[name]

    def attribute_type(self, type_name: str, attribute: str) -> str | None:
        found = self._lookup(type_name, attribute, set())
        if found is None:
            return None
        kind, declaring = found
        layout = self.classes[declaring]
        if kind == "field":
            slot = layout.slot(attribute)
            hint = slot.type_hint if slot is not None else None
        elif attribute in layout.properties:
            hint = annotation_head(layout.methods[attribute].returns)
            if hint == "Self":
                hint = type_name
        else:
            return None
        return hint if hint in self.classes else None


class SemanticModel:
    def __init__(self, tree: ast.AST, index: ProjectIndex | None = None) -> None:
        self.tree = tree
        self.scopes = ScopeIndex(tree)
        self.index = (index or ProjectIndex()).with_unit(tree)
        self._symbol_types: dict[Symbol, str | None] = {}
        self._resolving: set[Symbol] = set()

    def symbol_for(self, node: ast.Name) -> Symbol | None:
        return self.scopes.symbol_for(node)

    def type_of(self, expr: ast.AST) -> str | None:
        if isinstance(expr, ast.Name):
            return self._name_type(expr)
        if isinstance(expr, ast.Attribute):
            receiver = self.type_of(expr.value)
            if receiver is None:
                return None
            return self.index.attribute_type(receiver, expr.attr)
        if isinstance(expr, ast.Call):
            return self._call_type(expr)
        if isinstance(expr, (ast.Await, ast.NamedExpr)):
            return self.type_of(expr.value)
        return None

    def field_path(self, node: ast.Attribute) -> FieldAccessPath | None:
        receiver = self.type_of(node.value)
        if receiver is None:
            return None
        return self.attribute_path(receiver, node.attr, Position.of(node))

    def attribute_path(
        self, receiver: str, attribute: str, position: Position
    ) -> FieldAccessPath | None:
        owner = self.index.owner_of(receiver, attribute)
        if owner is None:
            return None
        return FieldAccessPath(owner_type=owner, field_name=attribute, position=position)

    def symbol_type(self, symbol: Symbol) -> str | None:
        if symbol in self._symbol_types:
            return self._symbol_types[symbol]
        if symbol in self._resolving:
            return None
        self._resolving.add(symbol)
        try:
            bindings = self.scopes.bindings(symbol)
            resolved = None
            for binding in bindings:
                resolved = self._declared_type(binding)
                if resolved is not None:
                    break
            if resolved is None:
                for binding in bindings:
                    resolved = self._inferred_type(binding)
                    if resolved is not None:
                        break
        finally:
            self._resolving.discard(symbol)
        self._symbol_types[symbol] = resolved
        return resolved

    def _known(self, name: str | None) -> str | None:
        if name is not None and name in self.index:
            return name
        return None

    def _declared_type(self, binding: ast.AST) -> str | None:
        if isinstance(binding, ast.arg):
            if binding.annotation is not None:
                return self._known(annotation_head(binding.annotation))
            return self._receiver_type(binding)
        if isinstance(binding, ast.Name):
            parent = self.scopes.parents.get(binding)
            if isinstance(parent, ast.AnnAssign) and parent.target is binding:
                return self._known(annotation_head(parent.annotation))
        return None

    def _inferred_type(self, binding: ast.AST) -> str | None:
        if not isinstance(binding, ast.Name):
            return None
        parent = self.scopes.parents.get(binding)
        if isinstance(parent, ast.Assign) and any(target is binding for target in parent.targets):
            return self.type_of(parent.value)
        if isinstance(parent, ast.AnnAssign) and parent.value is not None:
            return self.type_of(parent.value)
        if isinstance(parent, ast.NamedExpr) and parent.target is binding:
            return self.type_of(parent.value)
        return None

    def _receiver_type(self, arg: ast.arg) -> str | None:
        fn = self.scopes.arg_owner.get(arg)
        if not isinstance(fn, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return None
        owner = self.scopes.enclosing_class(fn)
        if owner is None or receiver_name(fn) != arg.arg:
            return None
        positional = [*fn.args.posonlyargs, *fn.args.args]
        if positional[0] is not arg:
            return None
        return self._known(owner.name)

    def _name_type(self, node: ast.Name) -> str | None:
        narrowed = self._narrowed_type(node)
        if narrowed is not None:
            return narrowed
        symbol = self.scopes.symbol_for(node)
        if symbol is None:
            return None
        return self.symbol_type(symbol)

    def _narrowed_type(self, node: ast.Name) -> str | None:
        child: ast.AST = node
        parent = self.scopes.parents.get(child)
        while parent is not None:
            test: ast.AST | None = None
            if isinstance(parent, (ast.If, ast.While)) and any(stmt is child for stmt in parent.body):
                test = parent.test
            elif isinstance(parent, ast.IfExp) and parent.body is child:
                test = parent.test
            if test is not None:
                narrowed = self._isinstance_target(test, node.id)
                if narrowed is not None:
                    return narrowed
            child = parent
            parent = self.scopes.parents.get(child)
        return None

    def _isinstance_target(self, test: ast.AST, name: str) -> str | None:
        if isinstance(test, ast.BoolOp) and isinstance(test.op, ast.And):
            for value in test.values:
                found = self._isinstance_target(value, name)
                if found is not None:
                    return found
            return None
        if not isinstance(test, ast.Call) or len(test.args) != 2:
            return None
        if not isinstance(test.func, ast.Name) or test.func.id != "isinstance":
            return None
        subject, classinfo = test.args
        if not isinstance(subject, ast.Name) or subject.id != name:
            return None
        return self._known(_base_name(classinfo))

    def _class_reference(self, expr: ast.AST) -> str | None:
        """Class name when ``expr`` denotes a class object rather than an instance."""
        if isinstance(expr, ast.Name):
            symbol = self.scopes.symbol_for(expr)
            if symbol is None:
                return self._known(expr.id)
            for binding in self.scopes.bindings(symbol):
                if isinstance(binding, ast.ClassDef):
                    return self._known(binding.name)
                if isinstance(binding, ast.alias):
                    return self._known(binding.name.split(".")[-1])
            return None
        if isinstance(expr, ast.Attribute) and isinstance(expr.value, ast.Name):
            symbol = self.scopes.symbol_for(expr.value)
            if symbol is None:
                return None
            if any(isinstance(binding, ast.alias) for binding in self.scopes.bindings(symbol)):
                return self._known(expr.attr)
        return None

    def _return_type(self, fn: FunctionNode, receiver: str | None) -> str | None:
        head = annotation_head(fn.returns)
        if head == "Self":
            return receiver
        return self._known(head)

    def _call_type(self, call: ast.Call) -> str | None:
        func = call.func
        constructed = self._class_reference(func)
        if constructed is not None:
            return constructed
        if isinstance(func, ast.Name):
            symbol = self.scopes.symbol_for(func)
            if symbol is None:
                return None
            for binding in self.scopes.bindings(symbol):
                if isinstance(binding, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    return self._return_type(binding, None)
                if isinstance(binding, ast.arg):
                    return self._class_parameter_type(binding)
            return None
        if isinstance(func, ast.Attribute):
            receiver = self.type_of(func.value)
            if receiver is None:
                receiver = self._class_reference(func.value)
            if receiver is None:
                return None
            method = self.index.find_method(receiver, func.attr)
            if method is None:
                return None
            return self._return_type(method, receiver)
        return None

    def _class_parameter_type(self, arg: ast.arg) -> str | None:
        # ``cls(...)`` inside a classmethod constructs the enclosing class.
        fn = self.scopes.arg_owner.get(arg)
        if not isinstance(fn, (ast.FunctionDef, ast.AsyncFunctionDef)) or not is_classmethod(fn):
            return None
        owner = self.scopes.enclosing_class(fn)
        positional = [*fn.args.posonlyargs, *fn.args.args]
        if owner is None or not positional or positional[0] is not arg:
            return None
        return self._known(owner.name)

    def resolve_callee(self, call: ast.Call) -> tuple[FunctionNode, int] | None:
        """Return the called definition and the number of leading implicit parameters."""
        func = call.func
        if isinstance(func, ast.Name):
            symbol = self.scopes.symbol_for(func)
            if symbol is None:
                return None
            for binding in self.scopes.bindings(symbol):
                if isinstance(binding, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    return binding, 0
            return None
        if not isinstance(func, ast.Attribute):
            return None
        receiver = self.type_of(func.value)
        if receiver is not None:
            method = self.index.find_method(receiver, func.attr)
            if method is None or is_property(method):
                return None
            return method, 0 if is_staticmethod(method) else 1
        owner = self._class_reference(func.value)
        if owner is not None:
            method = self.index.find_method(owner, func.attr)
            if method is None or is_property(method):
                return None
            return method, 1 if is_classmethod(method) else 0
        return None

    def call_parameters(self, call: ast.Call) -> list[tuple[ast.expr, ast.arg, FunctionNode]]:
        resolved = self.resolve_callee(call)
        if resolved is None:
            return []
        fn, offset = resolved
        positional = [*fn.args.posonlyargs, *fn.args.args]
        implicit = positional[:offset]
        positional = positional[offset:]
        pairs: list[tuple[ast.expr, ast.arg, FunctionNode]] = []
        for idx, arg in enumerate(call.args):
            if isinstance(arg, ast.Starred) or idx >= len(positional):
                break
            pairs.append((arg, positional[idx], fn))
        by_keyword = {
            param.arg: param
            for param in [*fn.args.args, *fn.args.kwonlyargs]
            if not any(param is skipped for skipped in implicit)
        }
        for keyword in call.keywords:
            if keyword.arg is None:
                continue
            param = by_keyword.get(keyword.arg)
            if param is not None:
                pairs.append((keyword.value, param, fn))
        return pairs

    def accepts_reference(self, param: ast.arg) -> bool:
        head = annotation_head(param.annotation)
        if head is None:
            return False
        return head in MUTABLE_REFERENCE_TYPES or head in self.index

    def is_builtin(self, node: ast.Name, name: str) -> bool:
        return node.id == name and self.scopes.symbol_for(node) is None
