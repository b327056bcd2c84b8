"""Cross-catalogue identifiers."""

from __future__ import annotations

from bibresolve.core.identifiers import normalize_isbn
from bibresolve.core.models import ExternalIds
from bibresolve.core.types import Capability
from bibresolve.resolution.chain import Orchestrator


class ExternalIdFetcher:
    def __init__(self, orchestrator: Orchestrator) -> None:
        self.orchestrator = orchestrator

    async def fetch(self, isbn: str) -> ExternalIds:
        """Identifiers from every provider, higher-priority providers winning conflicts."""
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return ExternalIds()

        outcome = await self.orchestrator.resolve(Capability.FETCH_EXTERNAL_IDS, normalized)
        merged = ExternalIds()
        for result in outcome.results:
            merged = merged.merge(result.ids)
        return merged
