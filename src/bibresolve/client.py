"""Main library client for standalone usage."""

from __future__ import annotations

import logging
from typing import Any

from bibresolve.cache.client import AsyncRedisClient, KeyValueStore
from bibresolve.config import BibResolveSettings, get_settings
from bibresolve.context import ServiceContext
from bibresolve.core.models import (
    CoverResult,
    EditionVariant,
    EnrichmentResult,
    ExternalIds,
    GeneratedBook,
    ISBNResolution,
    PublicDomainResult,
    RatingsResult,
)
from bibresolve.core.types import CoverSize, ProviderName
from bibresolve.db.session import DatabaseManager
from bibresolve.db.sink import DatabasePersistenceSink
from bibresolve.log import configure_logging
from bibresolve.quota import QuotaStatus
from bibresolve.resolution.chain import Orchestrator
from bibresolve.resolution.registry import ProviderRegistry
from bibresolve.secrets import SecretSource
from bibresolve.services.batch import BatchReport, BatchResolver
from bibresolve.services.covers import CoverFetcher
from bibresolve.services.editions import EditionVariantFetcher
from bibresolve.services.enrichment import MetadataEnricher
from bibresolve.services.external_ids import ExternalIdFetcher
from bibresolve.services.generation import BookGenerator
from bibresolve.services.isbn import ISBNResolver
from bibresolve.services.public_domain import PublicDomainChecker
from bibresolve.services.queue import PersistenceSink, QueueConsumer, QueueMessage, QueueReport
from bibresolve.services.ratings import RatingsFetcher

logger = logging.getLogger(__name__)


class BibResolveClient:
    """
    Main client for the bibresolve library.

    Wires the shared store, provider registry and capability services from
    settings and exposes every capability as one method.

    Usage:
        async with BibResolveClient() as client:
            resolution = await client.resolve_isbn("1984", "George Orwell")
            metadata = await client.enrich_metadata(resolution.isbn)
            cover = await client.fetch_cover(resolution.isbn)

    Settings are loaded from environment variables or can be passed
    explicitly. Passing ``store`` replaces the Redis connection, which is
    how tests run without one.
    """

    def __init__(
        self,
        settings: BibResolveSettings | None = None,
        *,
        store: KeyValueStore | None = None,
        secrets: SecretSource | None = None,
        sink: PersistenceSink | None = None,
        setup_logging: bool = False,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._owned_store: AsyncRedisClient | None = None
        self._secrets = secrets
        self._sink = sink
        self._database: DatabaseManager | None = None
        self._setup_logging = setup_logging
        self._context: ServiceContext | None = None
        self._registry: ProviderRegistry | None = None
        self._orchestrator: Orchestrator | None = None

    async def __aenter__(self) -> BibResolveClient:
        await self._initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _initialize(self) -> None:
        settings = self._settings
        if self._setup_logging:
            configure_logging(settings.log_level)

        if self._store is None:
            self._owned_store = AsyncRedisClient(
                str(settings.redis_url),
                max_connections=settings.redis_max_connections,
            )
            await self._owned_store.connect()
            self._store = self._owned_store
            logger.info("Shared store connected")

        self._context = ServiceContext.from_settings(settings, self._store, self._secrets)
        self._registry = ProviderRegistry.from_settings(self._context)
        self._orchestrator = Orchestrator(
            self._registry,
            provider_timeout=settings.provider_timeout,
            accept_confidence=settings.isbn_accept_confidence,
        )
        logger.info(f"bibresolve client ready with {len(self._registry)} providers")

    async def close(self) -> None:
        """Close provider HTTP clients, the owned store and the database."""
        if self._registry:
            await self._registry.close_all()
            self._registry = None
        self._orchestrator = None

        if self._database:
            await self._database.close()
            self._database = None

        if self._owned_store:
            await self._owned_store.close()
            self._owned_store = None
            self._store = None

    @property
    def orchestrator(self) -> Orchestrator:
        if self._orchestrator is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with BibResolveClient() as client:'"
            )
        return self._orchestrator

    @property
    def registry(self) -> ProviderRegistry:
        return self.orchestrator.registry

    @property
    def context(self) -> ServiceContext:
        if self._context is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with BibResolveClient() as client:'"
            )
        return self._context

    # Capabilities

    async def resolve_isbn(self, title: str, author: str = "") -> ISBNResolution:
        """Title/author to ISBN-13. Never raises; check ``found`` on the result."""
        resolver = ISBNResolver(
            self.orchestrator,
            timeout=self._settings.isbn_resolution_timeout,
            accept_confidence=self._settings.isbn_accept_confidence,
        )
        return await resolver.resolve_isbn(title, author)

    async def fetch_cover(self, isbn: str, size: CoverSize = CoverSize.LARGE) -> CoverResult | None:
        return await CoverFetcher(self.orchestrator).fetch_cover(isbn, size)

    async def enrich_metadata(self, isbn: str) -> EnrichmentResult:
        """Metadata merged from every provider plus subjects from a few."""
        return await MetadataEnricher(self.orchestrator).enrich(isbn)

    async def batch_fetch_metadata(self, isbns: list[str]) -> BatchReport:
        """
        Metadata for many ISBNs through the batch provider.

        Every requested identifier appears in the report with a status;
        identifiers past the batch size come back ``deferred``.
        """
        return await self._batch_resolver().resolve(isbns)

    async def check_public_domain(
        self, isbn: str, first_match: bool = True
    ) -> PublicDomainResult | None:
        return await PublicDomainChecker(self.orchestrator).check(isbn, first_match=first_match)

    async def fetch_ratings(self, isbn: str) -> RatingsResult | None:
        return await RatingsFetcher(self.orchestrator).fetch(isbn)

    async def batch_fetch_ratings(self, isbns: list[str]) -> dict[str, RatingsResult]:
        return await RatingsFetcher(self.orchestrator).batch_fetch(isbns)

    async def fetch_edition_variants(self, isbn: str) -> list[EditionVariant]:
        return await EditionVariantFetcher(self.orchestrator).fetch(isbn)

    async def fetch_external_ids(self, isbn: str) -> ExternalIds:
        return await ExternalIdFetcher(self.orchestrator).fetch(isbn)

    async def generate_books(self, prompt: str, count: int = 10) -> list[GeneratedBook]:
        generator = BookGenerator(
            self.orchestrator,
            timeout=self._settings.generation_timeout,
            dedupe_threshold=self._settings.generation_dedupe_threshold,
        )
        return await generator.generate(prompt, count)

    # Operations

    async def process_queue(self, messages: list[QueueMessage]) -> QueueReport:
        """Consume one delivery of enrichment messages, acking or retrying each."""
        consumer = QueueConsumer(
            self._batch_resolver(),
            self.orchestrator,
            self.context.cache,
            self._persistence_sink(),
            not_found_ttl=self._settings.not_found_ttl,
        )
        return await consumer.process(messages)

    async def quota_status(self) -> dict[str, QuotaStatus]:
        """Current usage for every metered provider."""
        return {
            name: await quota.get_status() for name, quota in self.context.quotas.items()
        }

    def provider_stats(self) -> dict[str, Any]:
        return self.registry.stats()

    def _batch_resolver(self) -> BatchResolver:
        provider = self.registry.get(ProviderName.ISBNDB)
        if provider is None:
            raise RuntimeError("Batch metadata needs the ISBNdb provider to be registered")
        return BatchResolver(
            provider,
            self.context.cache,
            negative_ttl=self._settings.negative_cache_ttl,
            timeout=self._settings.provider_timeout,
        )

    def _persistence_sink(self) -> PersistenceSink:
        if self._sink is None:
            self._database = DatabaseManager.from_settings(self._settings)
            self._sink = DatabasePersistenceSink(self._database)
        return self._sink


# Convenience function for one-off resolutions
async def resolve_isbn(
    title: str,
    author: str = "",
    *,
    settings: BibResolveSettings | None = None,
) -> ISBNResolution:
    """
    Resolve a title to an ISBN (convenience function).

    For multiple resolutions, use BibResolveClient for better performance.
    """
    async with BibResolveClient(settings) as client:
        return await client.resolve_isbn(title, author)
