from __future__ import annotations

import ast
import textwrap

from fieldguard.analysis.aliases import AliasTracker
from fieldguard.analysis.model import FieldAccessPath, Position, Symbol
from fieldguard.analysis.selectors import SelectorResolver, unwrap_selector
from fieldguard.analysis.semantic import SemanticModel

SOURCE = textwrap.dedent(
    """
    class Entity:
        items: list[int] = []

        def size(self) -> int:
            return len(self.items)

    def use(e: Entity, other):
        e.items[0][1] = 1
        e.size = 2
        other.items = 3
        first = e.items
        first = other.items
        second: list[int] = e.items
        a = b = e.items
    """
).lstrip()


def _model() -> tuple[ast.Module, SemanticModel]:
    tree = ast.parse(SOURCE)
    return tree, SemanticModel(tree)


def _statement(tree: ast.AST, line: int) -> ast.stmt:
    for node in ast.walk(tree):
        if isinstance(node, ast.stmt) and node.lineno == line:
            return node
    raise AssertionError(f"no statement on line {line}")


def test_unwrap_selector_strips_indexing_and_starred() -> None:
    expr = ast.parse("obj.items[0][1:2]", mode="eval").body
    selector = unwrap_selector(expr)
    assert isinstance(selector, ast.Attribute)
    assert selector.attr == "items"
    starred = ast.parse("*obj.items, = x").body[0].targets[0].elts[0]
    assert unwrap_selector(starred).attr == "items"
    assert unwrap_selector(ast.parse("name[0]", mode="eval").body) is None
    assert unwrap_selector(ast.parse("f()", mode="eval").body) is None


def test_resolver_returns_owner_and_attribute_position() -> None:
    tree, model = _model()
    resolver = SelectorResolver(model)
    target = _statement(tree, 8).targets[0]
    path = resolver.resolve(target)
    assert path == FieldAccessPath("Entity", "items", Position(line=8, column=4))


def test_resolver_drops_methods_and_untyped_receivers() -> None:
    tree, model = _model()
    resolver = SelectorResolver(model)
    assert resolver.resolve(_statement(tree, 9).targets[0]) is None
    assert resolver.resolve(_statement(tree, 10).targets[0]) is None


def test_alias_tracker_first_binding_wins() -> None:
    tree, model = _model()
    resolver = SelectorResolver(model)
    aliases = AliasTracker(model.scopes, resolver)
    for line in (11, 12, 13, 14):
        aliases.observe(_statement(tree, line))
    first = aliases.lookup(Symbol(scope="use@7", name="first"))
    assert first == FieldAccessPath("Entity", "items", Position(line=11, column=12))
    second = aliases.lookup(Symbol(scope="use@7", name="second"))
    assert second is not None and second.position.line == 13
    # chained assignments have two targets and are not tracked
    assert aliases.lookup(Symbol(scope="use@7", name="a")) is None


def test_alias_tracker_bind_keeps_existing_entry() -> None:
    _, model = _model()
    aliases = AliasTracker(model.scopes, SelectorResolver(model))
    symbol = Symbol(scope="f@1", name="values")
    first_path = FieldAccessPath("Entity", "items", Position(1, 0))
    aliases.bind(symbol, first_path)
    aliases.bind(symbol, FieldAccessPath("Other", "items", Position(2, 0)))
    assert aliases.lookup(symbol) == first_path
