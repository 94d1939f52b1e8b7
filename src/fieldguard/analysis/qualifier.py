from __future__ import annotations

from fieldguard.analysis.model import (
    VIOLATION_TEMPLATE,
    MutationCandidate,
    ProtectedTypeSet,
    Violation,
)
from fieldguard.analysis.scopes import ScopeLocator
from fieldguard.analysis.semantic import SemanticModel


def is_exported(name: str) -> bool:
    return bool(name) and not name.startswith("_")


class MutationQualifier:
    def __init__(
        self,
        model: SemanticModel,
        protected: ProtectedTypeSet,
        locator: ScopeLocator,
    ) -> None:
        self.model = model
        self.protected = protected
        self.locator = locator

    def qualify(self, candidate: MutationCandidate) -> Violation | None:
        path = candidate.path
        if path is None:
            return None
        if not is_exported(path.field_name):
            return None
        if not self.protected.is_protected(path.owner_type):
            return None
        if self.model.index.is_embedded_slot(path.owner_type, path.field_name):
            return None
        if self.locator.enclosing_method(path.position) == path.owner_type:
            return None
        return Violation(
            owner_type=path.owner_type,
            field_name=path.field_name,
            position=path.position,
            message=VIOLATION_TEMPLATE.format(owner=path.owner_type, field=path.field_name),
        )
