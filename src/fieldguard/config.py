"""Reads ``fieldguard.toml``.

``[protect]`` carries ``structs`` and ``entity_list_file``; ``[scan]`` carries
``exclude_dirs``. A missing, unreadable or malformed file reads as empty.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TypeAlias
import tomllib

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "fieldguard.toml"
PROTECT_SECTION = "protect"
SCAN_SECTION = "scan"

ConfigTable: TypeAlias = dict[str, object]


def read_config(root: Path | None = None, config_path: Path | None = None) -> ConfigTable:
    if config_path is None:
        config_path = (root if root is not None else Path.cwd()) / DEFAULT_CONFIG_NAME
    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.debug("cannot read config %s: %s", config_path, exc)
        return {}
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        logger.debug("malformed config %s: %s", config_path, exc)
        return {}
    return data


def config_section(config: ConfigTable, name: str) -> ConfigTable:
    section = config.get(name)
    return section if isinstance(section, dict) else {}


def split_names(value: object) -> list[str]:
    """Split a comma separated string, or a list of them, into trimmed names."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return []
    names: list[str] = []
    for item in value:
        if isinstance(item, str):
            names.extend(part.strip() for part in item.split(",") if part.strip())
    return names


def exclude_dirs_from(config: ConfigTable) -> list[str]:
    return split_names(config_section(config, SCAN_SECTION).get("exclude_dirs"))


def protect_options(config: ConfigTable, overrides: ConfigTable) -> ConfigTable:
    """``[protect]`` values with command-line overrides applied.

    An override of ``None`` keeps the file's value.
    """
    merged = dict(config_section(config, PROTECT_SECTION))
    merged.update((key, value) for key, value in overrides.items() if value is not None)
    return merged
