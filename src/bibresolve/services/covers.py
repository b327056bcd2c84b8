"""Cover image lookup."""

from __future__ import annotations

import logging

from bibresolve.core.identifiers import normalize_isbn
from bibresolve.core.models import CoverResult
from bibresolve.core.types import Capability, CoverSize
from bibresolve.resolution.chain import Orchestrator

logger = logging.getLogger(__name__)


class CoverFetcher:
    """First provider with a cover wins."""

    def __init__(self, orchestrator: Orchestrator) -> None:
        self.orchestrator = orchestrator

    async def fetch_cover(
        self,
        isbn: str,
        size: CoverSize = CoverSize.LARGE,
    ) -> CoverResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            logger.debug(f"Invalid ISBN {isbn!r}, no cover lookup")
            return None

        outcome = await self.orchestrator.resolve(Capability.FETCH_COVER, normalized, size)
        if not outcome.found:
            logger.info(f"No cover for {normalized} after {len(outcome.attempts)} providers")
        return outcome.result
