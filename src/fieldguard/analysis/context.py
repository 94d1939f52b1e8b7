from __future__ import annotations

from dataclasses import dataclass, field

from fieldguard.analysis.aliases import AliasTracker
from fieldguard.analysis.model import Position, ProtectedTypeSet, Violation
from fieldguard.analysis.registry import ProtectedTypeRegistry
from fieldguard.analysis.selectors import SelectorResolver
from fieldguard.analysis.semantic import SemanticModel


@dataclass
class ReportDeduplicator:
    seen: set[tuple[str, str, Position]] = field(default_factory=set)

    def should_report(self, violation: Violation) -> bool:
        key = violation.key
        if key in self.seen:
            return False
        self.seen.add(key)
        return True


@dataclass
class AnalysisContext:
    """State that lives for exactly one analysis run over one module."""

    protected: ProtectedTypeSet
    model: SemanticModel
    resolver: SelectorResolver
    aliases: AliasTracker
    deduplicator: ReportDeduplicator = field(default_factory=ReportDeduplicator)

    @classmethod
    def begin(cls, registry: ProtectedTypeRegistry, model: SemanticModel) -> AnalysisContext:
        resolver = SelectorResolver(model)
        return cls(
            protected=registry.build(),
            model=model,
            resolver=resolver,
            aliases=AliasTracker(model.scopes, resolver),
        )
