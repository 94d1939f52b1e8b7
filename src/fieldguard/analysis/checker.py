from __future__ import annotations

import ast
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from fieldguard.analysis.context import AnalysisContext
from fieldguard.analysis.model import FileError, Violation
from fieldguard.analysis.qualifier import MutationQualifier
from fieldguard.analysis.registry import ProtectedTypeRegistry
from fieldguard.analysis.scanner import MutationScanner
from fieldguard.analysis.scopes import ScopeLocator
from fieldguard.analysis.semantic import ProjectIndex, SemanticModel

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_DIRS = frozenset({"__pycache__", ".git", ".venv", "venv", ".tox", "build", "dist"})


@dataclass
class CheckResult:
    diagnostics: dict[str, list[Violation]] = field(default_factory=dict)
    errors: list[FileError] = field(default_factory=list)
    files_checked: int = 0

    @property
    def violation_count(self) -> int:
        return sum(len(items) for items in self.diagnostics.values())

    def rendered(self) -> list[str]:
        lines: list[str] = []
        for path in sorted(self.diagnostics):
            lines.extend(violation.render(path) for violation in self.diagnostics[path])
        return lines


def check_tree(
    tree: ast.AST,
    *,
    registry: ProtectedTypeRegistry,
    index: ProjectIndex | None = None,
) -> list[Violation]:
    model = SemanticModel(tree, index)
    context = AnalysisContext.begin(registry, model)
    scanner = MutationScanner(model, context.resolver, context.aliases)
    qualifier = MutationQualifier(model, context.protected, ScopeLocator(tree))
    violations: list[Violation] = []
    for candidate in scanner.scan():
        violation = qualifier.qualify(candidate)
        if violation is None:
            continue
        if context.deduplicator.should_report(violation):
            violations.append(violation)
    violations.sort(key=lambda item: item.position)
    return violations


def check_source(
    source: str,
    *,
    registry: ProtectedTypeRegistry,
    index: ProjectIndex | None = None,
    filename: str = "<unknown>",
) -> list[Violation]:
    tree = ast.parse(source, filename=filename)
    return check_tree(tree, registry=registry, index=index)


def iter_python_files(
    paths: Iterable[Path], *, exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS
) -> list[Path]:
    excluded = set(exclude_dirs)
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            for candidate in sorted(path.rglob("*.py")):
                relative = candidate.relative_to(path)
                if any(part in excluded for part in relative.parts[:-1]):
                    continue
                files.append(candidate)
        else:
            files.append(path)
    return files


def _parse_file(path: Path) -> tuple[ast.AST | None, FileError | None]:
    try:
        source = path.read_text(encoding="utf-8")
    except OSError as exc:
        return None, FileError(path=str(path), line=1, column=1, message=f"unable to read file: {exc}")
    except UnicodeDecodeError as exc:
        return None, FileError(path=str(path), line=1, column=1, message=f"unable to decode file: {exc}")
    try:
        return ast.parse(source, filename=str(path)), None
    except SyntaxError as exc:
        return None, FileError(
            path=str(path),
            line=int(exc.lineno or 1),
            column=int(exc.offset or 1),
            message=f"syntax error: {exc.msg}",
        )


def check_paths(
    paths: Iterable[Path],
    *,
    registry: ProtectedTypeRegistry,
    exclude_dirs: Iterable[str] = DEFAULT_EXCLUDE_DIRS,
) -> CheckResult:
    """Check every Python file under ``paths`` against one shared class index."""
    result = CheckResult()
    trees: dict[str, ast.AST] = {}
    for path in iter_python_files(paths, exclude_dirs=exclude_dirs):
        tree, error = _parse_file(path)
        if error is not None:
            logger.debug("skipping %s: %s", path, error.message)
            result.errors.append(error)
            continue
        trees[str(path)] = tree
    index = ProjectIndex.from_trees(trees.values())
    for name, tree in trees.items():
        violations = check_tree(tree, registry=registry, index=index)
        result.files_checked += 1
        if violations:
            result.diagnostics[name] = violations
    return result
