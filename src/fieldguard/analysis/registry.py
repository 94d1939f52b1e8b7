from __future__ import annotations

import ast
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from fieldguard.analysis.model import ProtectedTypeSet

if TYPE_CHECKING:
    from fieldguard.schema import CheckerOptions

logger = logging.getLogger(__name__)

ENTITY_LIST_NAME = "ENTITY_LIST"


def _element_type_name(node: ast.AST) -> str | None:
    if isinstance(node, ast.Call):
        return _element_type_name(node.func)
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        name = node.value.strip().rsplit(".", 1)[-1]
        return name or None
    return None


def _entity_list_value(tree: ast.Module) -> ast.AST | None:
    for stmt in tree.body:
        if isinstance(stmt, ast.Assign):
            for target in stmt.targets:
                if isinstance(target, ast.Name) and target.id == ENTITY_LIST_NAME:
                    return stmt.value
        elif isinstance(stmt, ast.AnnAssign) and stmt.value is not None:
            if isinstance(stmt.target, ast.Name) and stmt.target.id == ENTITY_LIST_NAME:
                return stmt.value
    return None


def load_entity_list(path: Path) -> list[str]:
    """Return the type names listed in ``ENTITY_LIST`` of a declaration module.

    Unreadable or unparseable files contribute nothing.
    """
    try:
        source = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("cannot read entity list file %s: %s", path, exc)
        return []
    try:
        tree = ast.parse(source, filename=str(path))
    except (SyntaxError, ValueError) as exc:
        logger.debug("cannot parse entity list file %s: %s", path, exc)
        return []
    value = _entity_list_value(tree)
    if not isinstance(value, (ast.List, ast.Tuple, ast.Set)):
        logger.debug("no %s literal in %s", ENTITY_LIST_NAME, path)
        return []
    names: list[str] = []
    for elt in value.elts:
        name = _element_type_name(elt)
        if name:
            names.append(name)
    return names


def build_protected_types(
    explicit_names: Iterable[str] = (),
    declaration_source: Path | None = None,
) -> ProtectedTypeSet:
    names = {name.strip() for name in explicit_names if name and name.strip()}
    if declaration_source is not None:
        names.update(load_entity_list(declaration_source))
    return ProtectedTypeSet(names=frozenset(names), protect_all=not names)


class ProtectedTypeRegistry:
    """Builds the protected set once and hands out the same instance afterwards."""

    def __init__(
        self,
        explicit_names: Iterable[str] = (),
        declaration_source: Path | str | None = None,
    ) -> None:
        self.explicit_names = tuple(explicit_names)
        if isinstance(declaration_source, str):
            declaration_source = Path(declaration_source) if declaration_source.strip() else None
        self.declaration_source = declaration_source
        self._protected: ProtectedTypeSet | None = None

    @classmethod
    def from_options(
        cls, options: CheckerOptions, *, root: Path | None = None
    ) -> ProtectedTypeRegistry:
        source = None
        if options.entity_list_file:
            source = Path(options.entity_list_file)
            if root is not None and not source.is_absolute():
                source = root / source
        return cls(explicit_names=options.structs, declaration_source=source)

    @property
    def built(self) -> bool:
        return self._protected is not None

    def build(self) -> ProtectedTypeSet:
        if self._protected is None:
            self._protected = build_protected_types(
                self.explicit_names, self.declaration_source
            )
            logger.debug(
                "protected types: %s",
                "<all>" if self._protected.protect_all else sorted(self._protected.names),
            )
        return self._protected
