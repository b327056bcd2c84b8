"""AI book generation."""

from __future__ import annotations

import logging

from bibresolve.core.models import GeneratedBook
from bibresolve.core.types import Capability
from bibresolve.resolution.chain import Orchestrator
from bibresolve.resolution.scoring import titles_similar

logger = logging.getLogger(__name__)


def dedupe_generated(books: list[GeneratedBook], threshold: float = 0.6) -> list[GeneratedBook]:
    """Drop books whose title is similar to one already kept."""
    kept: list[GeneratedBook] = []
    for book in books:
        if not any(titles_similar(book.title, other.title, threshold) for other in kept):
            kept.append(book)
    return kept


class BookGenerator:
    """Asks every AI provider concurrently and merges their suggestions."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        timeout: float = 60.0,
        dedupe_threshold: float = 0.6,
    ) -> None:
        self.orchestrator = orchestrator
        self.timeout = timeout
        self.dedupe_threshold = dedupe_threshold

    async def generate(self, prompt: str, count: int = 10) -> list[GeneratedBook]:
        if not prompt.strip() or count <= 0:
            return []

        outcome = await self.orchestrator.resolve(
            Capability.GENERATE_BOOKS, prompt, count, timeout=self.timeout
        )
        books = [book for provider_books in outcome.results for book in provider_books]
        unique = dedupe_generated(books, self.dedupe_threshold)
        logger.info(
            f"Generated {len(unique)} unique books ({len(books)} total) "
            f"from {len(outcome.results)} providers"
        )
        return unique
