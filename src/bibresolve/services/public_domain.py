"""Public domain status."""

from __future__ import annotations

import logging

from bibresolve.core.identifiers import normalize_isbn
from bibresolve.core.models import PublicDomainResult
from bibresolve.core.types import Capability, ProviderName, PublicDomainReason, ResolutionMode
from bibresolve.resolution.chain import Orchestrator

logger = logging.getLogger(__name__)

# Google Books reports a verified status, Archive.org only guesses from the date
PROVIDER_ORDER = [ProviderName.GOOGLE_BOOKS, ProviderName.ARCHIVE_ORG]


def verdict_rank(result: PublicDomainResult) -> tuple[bool, int]:
    return (result.reason == PublicDomainReason.API_VERIFIED, result.confidence)


class PublicDomainChecker:
    """
    Checks whether a book is in the public domain.

    By default the first provider with a verdict wins. With ``first_match``
    off, every provider is asked and an API-verified verdict beats a
    publication-date heuristic, then higher confidence wins.
    """

    def __init__(self, orchestrator: Orchestrator) -> None:
        self.orchestrator = orchestrator

    async def check(self, isbn: str, first_match: bool = True) -> PublicDomainResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None

        outcome = await self.orchestrator.resolve(
            Capability.CHECK_PUBLIC_DOMAIN,
            normalized,
            mode=ResolutionMode.FIRST_MATCH if first_match else ResolutionMode.AGGREGATE,
            provider_order=[str(name) for name in PROVIDER_ORDER],
        )
        if not outcome.results:
            return None
        if first_match:
            return outcome.result

        # max() keeps the first of equal ranks, which is the higher-priority provider
        best = max(outcome.results, key=verdict_rank)
        logger.debug(
            f"Public domain verdict for {normalized}: {best.is_public_domain} "
            f"({best.reason}, {best.source}, {best.confidence})"
        )
        return best
