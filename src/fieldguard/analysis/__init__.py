"""Static analysis subpackage for fieldguard."""

from .checker import CheckResult, check_paths, check_source, check_tree
from .model import ProtectedTypeSet, Violation
from .registry import ProtectedTypeRegistry, build_protected_types, load_entity_list

__all__ = [
    "CheckResult",
    "ProtectedTypeRegistry",
    "ProtectedTypeSet",
    "Violation",
    "build_protected_types",
    "check_paths",
    "check_source",
    "check_tree",
    "load_entity_list",
]
