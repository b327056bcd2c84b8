"""Edition variants of the same work."""

from __future__ import annotations

import logging

from bibresolve.core.identifiers import normalize_isbn
from bibresolve.core.models import EditionVariant
from bibresolve.core.types import Capability
from bibresolve.resolution.chain import Orchestrator

logger = logging.getLogger(__name__)


class EditionVariantFetcher:
    """Union of every provider's variants, deduplicated by ISBN."""

    def __init__(self, orchestrator: Orchestrator) -> None:
        self.orchestrator = orchestrator

    async def fetch(self, isbn: str) -> list[EditionVariant]:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return []

        outcome = await self.orchestrator.resolve(Capability.FETCH_EDITION_VARIANTS, normalized)

        # Provider priority order decides which description of a variant is kept
        variants: dict[str, EditionVariant] = {}
        for provider_variants in outcome.results:
            for variant in provider_variants:
                if variant.isbn != normalized:
                    variants.setdefault(variant.isbn, variant)

        logger.info(
            f"Edition variants for {normalized}: {len(variants)} from "
            f"{[a.provider for a in outcome.attempts]}"
        )
        return list(variants.values())
