"""Reader ratings, single and batched."""

from __future__ import annotations

import logging

from bibresolve.core.exceptions import ProviderError
from bibresolve.core.identifiers import deduplicate_isbns, normalize_isbn
from bibresolve.core.models import RatingsResult
from bibresolve.core.types import Capability
from bibresolve.resolution.base import BaseProvider
from bibresolve.resolution.chain import Orchestrator

logger = logging.getLogger(__name__)


class RatingsFetcher:
    """Ratings from the first provider that has them."""

    def __init__(self, orchestrator: Orchestrator) -> None:
        self.orchestrator = orchestrator

    async def fetch(self, isbn: str) -> RatingsResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        outcome = await self.orchestrator.resolve(Capability.FETCH_RATINGS, normalized)
        return outcome.result

    async def batch_fetch(self, isbns: list[str]) -> dict[str, RatingsResult]:
        """
        Ratings for many ISBNs.

        Providers with a batch endpoint answer in one call; others are asked
        one ISBN at a time. The more confident rating wins per ISBN.
        """
        valid = deduplicate_isbns(isbns)
        if not valid:
            return {}

        results: dict[str, RatingsResult] = {}
        providers = await self.orchestrator.registry.available_providers(Capability.FETCH_RATINGS)
        for provider in providers:
            try:
                found = await self._provider_ratings(provider, valid)
            except ProviderError as e:
                logger.warning(f"Batch ratings from {provider.name} failed: {e.message}")
                continue
            except Exception as e:
                logger.exception(f"Batch ratings from {provider.name} raised unexpectedly: {e}")
                continue

            for isbn, rating in found.items():
                current = results.get(isbn)
                if current is None or rating.confidence > current.confidence:
                    results[isbn] = rating

        logger.info(f"Batch ratings: {len(results)} of {len(valid)} ISBNs rated")
        return results

    async def _provider_ratings(
        self, provider: BaseProvider, isbns: list[str]
    ) -> dict[str, RatingsResult]:
        batch = getattr(provider, "batch_fetch_ratings", None)
        if batch is not None:
            found: dict[str, RatingsResult] = {}
            step = getattr(provider, "max_batch_size", len(isbns))
            for offset in range(0, len(isbns), step):
                found.update(await batch(isbns[offset:offset + step]))
            return found

        found = {}
        for isbn in isbns:
            rating = await provider.invoke(Capability.FETCH_RATINGS, isbn)
            if rating is not None:
                found[isbn] = rating
        return found
