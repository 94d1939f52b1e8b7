"""flake8 entry point: ``FGD001`` for writes to protected fields."""
from __future__ import annotations

import ast
from typing import Any, ClassVar, Iterator

from fieldguard import __version__
from fieldguard.analysis.checker import check_tree
from fieldguard.analysis.registry import ProtectedTypeRegistry
from fieldguard.schema import CheckerOptions

CODE = "FGD001"


class FieldGuardPlugin:
    name = "fieldguard"
    version = __version__

    registry: ClassVar[ProtectedTypeRegistry | None] = None

    def __init__(self, tree: ast.AST, filename: str = "<unknown>") -> None:
        self.tree = tree
        self.filename = filename

    @classmethod
    def add_options(cls, parser: Any) -> None:
        parser.add_option(
            "--protected-structs",
            default="",
            parse_from_config=True,
            comma_separated_list=True,
            help="Comma separated list of protected type names.",
        )
        parser.add_option(
            "--entity-list-file",
            default="",
            parse_from_config=True,
            help="Python module whose ENTITY_LIST names the protected types.",
        )

    @classmethod
    def parse_options(cls, options: Any) -> None:
        checker_options = CheckerOptions(
            structs=getattr(options, "protected_structs", None) or [],
            entity_list_file=getattr(options, "entity_list_file", None) or None,
        )
        cls.registry = ProtectedTypeRegistry.from_options(checker_options)
        cls.registry.build()

    def run(self) -> Iterator[tuple[int, int, str, type]]:
        registry = type(self).registry
        if registry is None:
            registry = ProtectedTypeRegistry()
            type(self).registry = registry
        for violation in check_tree(self.tree, registry=registry):
            yield (
                violation.position.line,
                violation.position.column,
                f"{CODE} {violation.message}",
                type(self),
            )
