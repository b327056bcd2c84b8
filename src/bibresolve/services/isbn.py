"""Title/author to ISBN resolution."""

from __future__ import annotations

import logging

from bibresolve.core.models import ISBNResolution
from bibresolve.core.types import AttemptStatus, Capability
from bibresolve.resolution.chain import Orchestrator

logger = logging.getLogger(__name__)

# Source tags for an unresolved title
NO_RESOLVER = "none"
ALL_FAILED = "all-failed"


class ISBNResolver:
    """
    Resolves a title/author pair to an ISBN-13.

    Providers run in registry order and the most confident answer wins; the
    chain stops early once an answer reaches ``accept_confidence`` so the
    paid provider is only reached when the free ones are unsure.
    ``timeout`` bounds each provider call; a slow provider is abandoned
    without losing answers the earlier ones gave.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        timeout: float = 15.0,
        accept_confidence: int = 60,
    ) -> None:
        self.orchestrator = orchestrator
        self.timeout = timeout
        self.accept_confidence = accept_confidence

    async def resolve_isbn(self, title: str, author: str = "") -> ISBNResolution:
        """Never raises; an unresolved title comes back with ``isbn=None``."""
        if not title or not title.strip():
            logger.debug("Empty title, skipping ISBN resolution")
            return ISBNResolution(source=NO_RESOLVER)

        if not self.orchestrator.registry.has_capability(Capability.RESOLVE_ISBN):
            logger.warning("No ISBN resolvers registered")
            return ISBNResolution(source=NO_RESOLVER)

        outcome = await self.orchestrator.resolve(
            Capability.RESOLVE_ISBN,
            title.strip(),
            author.strip(),
            accept_confidence=self.accept_confidence,
            timeout=self.timeout,
        )

        if outcome.found:
            result: ISBNResolution = outcome.result
            logger.info(
                f"Resolved '{title}' / '{author}' to {result.isbn} "
                f"via {result.source} ({result.confidence})"
            )
            return result

        if all(a.status == AttemptStatus.SKIPPED for a in outcome.attempts):
            return ISBNResolution(source=NO_RESOLVER)
        return ISBNResolution(source=ALL_FAILED)
