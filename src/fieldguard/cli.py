from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError

from fieldguard.analysis.checker import DEFAULT_EXCLUDE_DIRS, CheckResult, check_paths
from fieldguard.analysis.registry import ProtectedTypeRegistry
from fieldguard.config import (
    ConfigTable,
    exclude_dirs_from,
    protect_options,
    read_config,
    split_names,
)
from fieldguard.schema import CheckerOptions, CheckResponse, DiagnosticDTO, FileErrorDTO

app = typer.Typer(add_completion=False)

EXIT_CLEAN = 0
EXIT_VIOLATIONS = 1
EXIT_FILE_ERRORS = 2


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _build_registry(
    *,
    root: Path,
    config: ConfigTable,
    structs: List[str],
    entity_list_file: Path | None,
) -> ProtectedTypeRegistry:
    overrides: ConfigTable = {
        "structs": split_names(structs) or None,
        "entity_list_file": str(entity_list_file) if entity_list_file is not None else None,
    }
    try:
        options = CheckerOptions.model_validate(protect_options(config, overrides))
    except ValidationError as exc:
        raise typer.BadParameter(f"invalid [protect] options: {exc}") from exc
    return ProtectedTypeRegistry.from_options(options, root=root)


def _response(result: CheckResult) -> CheckResponse:
    diagnostics = [
        DiagnosticDTO.from_violation(path, violation)
        for path in sorted(result.diagnostics)
        for violation in result.diagnostics[path]
    ]
    return CheckResponse(
        diagnostics=diagnostics,
        errors=[FileErrorDTO.from_error(error) for error in result.errors],
        stats={
            "files_checked": result.files_checked,
            "violations": result.violation_count,
            "errors": len(result.errors),
        },
    )


def _exit_code(result: CheckResult) -> int:
    if result.violation_count:
        return EXIT_VIOLATIONS
    if result.errors:
        return EXIT_FILE_ERRORS
    return EXIT_CLEAN


@app.command()
def check(
    paths: List[Path] = typer.Argument(None),
    structs: List[str] = typer.Option(
        [], "--structs", help="Protected type names (comma separated, repeatable)."
    ),
    entity_list_file: Optional[Path] = typer.Option(
        None, "--entity-list-file", help="Module declaring ENTITY_LIST."
    ),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    exclude: List[str] = typer.Option([], "--exclude", help="Directory names to skip."),
    json_output: bool = typer.Option(False, "--json", help="Emit a JSON report."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Report writes to protected fields made outside their owner's methods."""
    _configure_logging(verbose)
    settings = read_config(root=root, config_path=config)
    registry = _build_registry(
        root=root, config=settings, structs=structs, entity_list_file=entity_list_file
    )
    exclude_dirs = set(DEFAULT_EXCLUDE_DIRS)
    exclude_dirs.update(exclude_dirs_from(settings))
    exclude_dirs.update(split_names(exclude))
    result = check_paths(paths or [root], registry=registry, exclude_dirs=exclude_dirs)
    if json_output:
        typer.echo(_response(result).model_dump_json(indent=2))
    else:
        for line in result.rendered():
            typer.echo(line)
        for error in result.errors:
            typer.echo(error.render(), err=True)
    raise typer.Exit(code=_exit_code(result))


@app.command()
def protected(
    structs: List[str] = typer.Option([], "--structs"),
    entity_list_file: Optional[Path] = typer.Option(None, "--entity-list-file"),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Print the set of protected types."""
    _configure_logging(verbose)
    settings = read_config(root=root, config_path=config)
    registry = _build_registry(
        root=root, config=settings, structs=structs, entity_list_file=entity_list_file
    )
    protected_set = registry.build()
    if protected_set.protect_all:
        typer.echo("All types are protected.")
        return
    for name in sorted(protected_set.names):
        typer.echo(name)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
