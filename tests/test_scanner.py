from __future__ import annotations

import ast
import textwrap

from fieldguard.analysis.aliases import AliasTracker
from fieldguard.analysis.model import MutationCandidate
from fieldguard.analysis.scanner import MutationScanner
from fieldguard.analysis.selectors import SelectorResolver
from fieldguard.analysis.semantic import SemanticModel


def _scanner(source: str) -> MutationScanner:
    tree = ast.parse(textwrap.dedent(source).lstrip())
    model = SemanticModel(tree)
    resolver = SelectorResolver(model)
    return MutationScanner(model, resolver, AliasTracker(model.scopes, resolver))


def _resolved(candidates: list[MutationCandidate]) -> list[tuple[str, str, int]]:
    return [
        (candidate.kind, f"{candidate.path.owner_type}.{candidate.path.field_name}", candidate.path.position.line)
        for candidate in candidates
        if candidate.path is not None
    ]


def test_scanner_recognizes_every_write_shape() -> None:
    scanner = _scanner(
        """
        class Entity:
            count: int = 0
            items: list[int] = []
            name: str = ""

        def use(e: Entity, ctx):
            e.count = 1
            e.count += 1
            del e.name
            e.name, e.count = "a", 2
            for e.name in ["x"]:
                pass
            with ctx as e.name:
                pass
            e.items[0] = 5
            *e.items, = [1, 2]
            setattr(e, "name", "b")
            object.__setattr__(e, "count", 3)
            delattr(e, "name")
            setattr(e, dynamic, 1)
        """
    )
    assert _resolved(list(scanner.scan())) == [
        ("assign", "Entity.count", 7),
        ("augassign", "Entity.count", 8),
        ("delete", "Entity.name", 9),
        ("assign", "Entity.name", 10),
        ("assign", "Entity.count", 10),
        ("assign", "Entity.name", 11),
        ("assign", "Entity.name", 13),
        ("assign", "Entity.items", 15),
        ("assign", "Entity.items", 16),
        ("setattr", "Entity.name", 17),
        ("setattr", "Entity.count", 18),
        ("setattr", "Entity.name", 19),
    ]


def test_scanner_is_single_use() -> None:
    scanner = _scanner(
        """
        class Entity:
            count: int = 0

        def use(e: Entity):
            e.count = 1
        """
    )
    assert len(_resolved(list(scanner.scan()))) == 1
    assert list(scanner.scan()) == []


def test_shadowed_setattr_is_not_the_builtin() -> None:
    scanner = _scanner(
        """
        class Entity:
            count: int = 0

        def setattr(obj, name, value):
            pass

        def use(e: Entity):
            setattr(e, "count", 1)
        """
    )
    assert _resolved(list(scanner.scan())) == []


def test_alias_writes_resolve_to_capture_position() -> None:
    scanner = _scanner(
        """
        class Entity:
            items: list[int] = []

        def use(e: Entity):
            p = e.items
            p[0] = 1
            p[0][1] = 2
            p = []
            del p[0]
        """
    )
    assert _resolved(list(scanner.scan())) == [
        ("assign", "Entity.items", 5),
        ("assign", "Entity.items", 5),
        ("delete", "Entity.items", 5),
    ]


def test_augmented_alias_of_mutable_field_writes_through() -> None:
    scanner = _scanner(
        """
        class Entity:
            items: list[int] = []
            count: int = 0

        def use(e: Entity):
            p = e.items
            n = e.count
            p += [1]
            n += 1
        """
    )
    assert _resolved(list(scanner.scan())) == [("augassign", "Entity.items", 6)]


def test_call_arguments_bind_parameters_before_definition_order() -> None:
    scanner = _scanner(
        """
        class Entity:
            items: list[int] = []
            names: list[str] = []

        def fill(values: list[int], labels) -> None:
            values[0] = 1
            labels[0] = "x"

        def use(e: Entity):
            fill(e.items, labels=e.names)
        """
    )
    assert _resolved(list(scanner.scan())) == [
        ("assign", "Entity.items", 10),
        ("assign", "Entity.names", 10),
        ("call-argument", "Entity.items", 10),
    ]


def test_constructor_calls_do_not_bind_parameters() -> None:
    scanner = _scanner(
        """
        class Entity:
            items: list[int] = []

        class Holder:
            def __init__(self, values: list[int]) -> None:
                values[0] = 1

        def use(e: Entity):
            Holder(e.items)
        """
    )
    assert _resolved(list(scanner.scan())) == []
