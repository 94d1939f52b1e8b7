from __future__ import annotations

from pathlib import Path
import textwrap

from fieldguard.analysis.checker import check_paths, check_source, iter_python_files
from fieldguard.analysis.registry import ProtectedTypeRegistry


def _write(tmp_path: Path, rel: str, content: str) -> Path:
    path = tmp_path / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content).lstrip())
    return path


def _messages(source: str, registry: ProtectedTypeRegistry) -> list[tuple[int, str]]:
    violations = check_source(textwrap.dedent(source).lstrip(), registry=registry)
    return [(violation.position.line, violation.message) for violation in violations]


def test_module_scope_write_is_reported_once() -> None:
    registry = ProtectedTypeRegistry(explicit_names=["Entity"])
    assert _messages(
        """
        class Entity:
            name: str = ""

            def set_protected_field(self, value: str) -> None:
                self.name = value
                self.name += "!"
                del self.name

        e = Entity()
        e.name = "x"
        """,
        registry,
    ) == [(10, "assignment to exported field Entity.name is forbidden outside its methods")]


def test_alias_round_trip_reports_capture_once() -> None:
    registry = ProtectedTypeRegistry()
    assert _messages(
        """
        class Entity:
            items: list[int] = []

        def use(e: Entity) -> None:
            p = e.items
            p[0] = 1
            p[1] = 2
        """,
        registry,
    ) == [(5, "assignment to exported field Entity.items is forbidden outside its methods")]


def test_augmented_alias_reports_capture() -> None:
    registry = ProtectedTypeRegistry()
    assert _messages(
        """
        class Entity:
            items: list[int] = []

        e = Entity()
        p = e.items
        p += [1]
        """,
        registry,
    ) == [(5, "assignment to exported field Entity.items is forbidden outside its methods")]


def test_reference_parameter_flags_call_site_but_getter_does_not() -> None:
    registry = ProtectedTypeRegistry()
    assert _messages(
        """
        class Entity:
            items: list[int] = []

            def get_items(self) -> list[int]:
                return self.items

        def read_only(values: list[int]) -> int:
            return len(values)

        def use(e: Entity) -> None:
            read_only(e.items)
            e.get_items()
        """,
        registry,
    ) == [(11, "assignment to exported field Entity.items is forbidden outside its methods")]


def test_subclass_write_to_inherited_field_belongs_to_the_base() -> None:
    registry = ProtectedTypeRegistry(explicit_names=["Base"])
    assert _messages(
        """
        class Base:
            def __init__(self) -> None:
                self.state = 0

        class Child(Base):
            def reset(self) -> None:
                self.state = 1

        def use(c: Child, b: Base) -> None:
            c.state = 2
            b.state = 3
        """,
        registry,
    ) == [
        (7, "assignment to exported field Base.state is forbidden outside its methods"),
        (10, "assignment to exported field Base.state is forbidden outside its methods"),
        (11, "assignment to exported field Base.state is forbidden outside its methods"),
    ]


def test_declared_base_field_is_not_shadowed_by_subclass_write() -> None:
    registry = ProtectedTypeRegistry(explicit_names=["A"])
    assert _messages(
        """
        class A:
            X: int = 0

        class B(A):
            def reset(self) -> None:
                self.X = 0

        class C(B):
            pass

        C().X = 5
        """,
        registry,
    ) == [
        (6, "assignment to exported field A.X is forbidden outside its methods"),
        (11, "assignment to exported field A.X is forbidden outside its methods"),
    ]


def test_static_method_write_on_another_instance_is_reported() -> None:
    registry = ProtectedTypeRegistry()
    assert _messages(
        """
        class Entity:
            name: str = ""

            @staticmethod
            def rename(other: Entity) -> None:
                other.name = "x"
        """,
        registry,
    ) == [(6, "assignment to exported field Entity.name is forbidden outside its methods")]


def test_property_assignment_is_not_a_field_write() -> None:
    registry = ProtectedTypeRegistry()
    assert _messages(
        """
        class Entity:
            def __init__(self) -> None:
                self._size = 0

            @property
            def size(self) -> int:
                return self._size

            @size.setter
            def size(self, value: int) -> None:
                self._size = value

        def use(e: Entity) -> None:
            e.size = 3
            e._size = 4
        """,
        registry,
    ) == []


def test_check_paths_shares_one_index_across_modules(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "pkg/models.py",
        """
        from dataclasses import dataclass

        @dataclass
        class Order:
            total: int = 0

            def add(self, amount: int) -> None:
                self.total += amount
        """,
    )
    service = _write(
        tmp_path,
        "pkg/service.py",
        """
        from pkg import models
        from pkg.models import Order

        def apply(order: Order) -> None:
            order.total = 0

        def create() -> None:
            order = models.Order()
            order.total += 1
        """,
    )
    _write(tmp_path, "pkg/build/generated.py", "x = 1\n")
    registry = ProtectedTypeRegistry(explicit_names=["Order"])
    result = check_paths([tmp_path], registry=registry, exclude_dirs={"build"})
    assert result.errors == []
    assert result.files_checked == 2
    assert list(result.diagnostics) == [str(service)]
    assert result.rendered() == [
        f"{service}:5:5: assignment to exported field Order.total is forbidden outside its methods",
        f"{service}:9:5: assignment to exported field Order.total is forbidden outside its methods",
    ]
    assert result.violation_count == 2


def test_check_paths_records_file_errors(tmp_path: Path) -> None:
    broken = _write(tmp_path, "broken.py", "def f(:\n")
    _write(tmp_path, "fine.py", "x = 1\n")
    result = check_paths([tmp_path], registry=ProtectedTypeRegistry())
    assert result.diagnostics == {}
    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.path == str(broken)
    assert error.line == 1
    assert error.message.startswith("syntax error")
    assert error.render().startswith(f"{broken}:1:")


def test_iter_python_files_skips_excluded_directories(tmp_path: Path) -> None:
    keep = _write(tmp_path, "src/app.py", "")
    _write(tmp_path, ".venv/lib/site.py", "")
    _write(tmp_path, "src/notes.txt", "")
    single = _write(tmp_path, "script.py", "")
    files = iter_python_files([tmp_path], exclude_dirs={".venv"})
    assert sorted(files) == sorted([keep, single])
    assert iter_python_files([single]) == [single]
