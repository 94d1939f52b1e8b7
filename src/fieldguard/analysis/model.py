from __future__ import annotations

import ast
from dataclasses import dataclass, field

VIOLATION_TEMPLATE = (
    "assignment to exported field {owner}.{field} is forbidden outside its methods"
)


@dataclass(frozen=True, order=True)
class Position:
    line: int
    column: int

    @classmethod
    def of(cls, node: ast.AST) -> Position:
        return cls(
            line=int(getattr(node, "lineno", 1)),
            column=int(getattr(node, "col_offset", 0)),
        )


@dataclass(frozen=True)
class Symbol:
    # scope is the qualified name of the binding scope, e.g. "<module>" or "f@3"
    scope: str
    name: str


@dataclass(frozen=True)
class FieldAccessPath:
    owner_type: str
    field_name: str
    position: Position


@dataclass(frozen=True)
class MutationCandidate:
    node: ast.AST
    path: FieldAccessPath | None
    kind: str


@dataclass(frozen=True)
class Violation:
    owner_type: str
    field_name: str
    position: Position
    message: str

    @property
    def key(self) -> tuple[str, str, Position]:
        return (self.owner_type, self.field_name, self.position)

    def render(self, path: str) -> str:
        return f"{path}:{self.position.line}:{self.position.column + 1}: {self.message}"


@dataclass(frozen=True)
class ProtectedTypeSet:
    names: frozenset[str] = frozenset()
    protect_all: bool = True

    def is_protected(self, type_name: str) -> bool:
        if self.protect_all:
            return True
        return type_name in self.names


@dataclass(frozen=True)
class FieldSlot:
    name: str
    type_hint: str | None = None
    embedded: bool = False
    inferred: bool = False


@dataclass
class ClassLayout:
    name: str
    bases: list[str] = field(default_factory=list)
    fields: list[FieldSlot] = field(default_factory=list)
    methods: dict[str, ast.FunctionDef | ast.AsyncFunctionDef] = field(default_factory=dict)
    properties: set[str] = field(default_factory=set)

    def slot(self, name: str) -> FieldSlot | None:
        for candidate in self.fields:
            if candidate.name == name:
                return candidate
        return None

    def add_field(self, slot: FieldSlot) -> None:
        if self.slot(slot.name) is None:
            self.fields.append(slot)


@dataclass(frozen=True)
class FileError:
    path: str
    line: int
    column: int
    message: str

    def render(self) -> str:
        return f"{self.path}:{self.line}:{self.column}: {self.message}"
