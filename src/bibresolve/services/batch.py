"""Batch metadata resolution over a multi-ISBN provider endpoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from bibresolve.cache.response import ResponseCache
from bibresolve.core.exceptions import ProviderError
from bibresolve.core.identifiers import in_english_scope, normalize_isbn
from bibresolve.core.models import BookMetadata
from bibresolve.core.types import BatchStatus

logger = logging.getLogger(__name__)


class BatchProvider(Protocol):
    """What a provider must offer to be driven by ``BatchResolver``."""

    BOOK_OPERATION: str
    CACHE_TTL: int

    @property
    def name(self) -> str: ...

    @property
    def max_batch_size(self) -> int: ...

    def cache_key(self, operation: str, identifier: str) -> str: ...

    async def is_available(self) -> bool: ...

    async def batch_lookup(self, isbns: list[str]) -> dict[str, dict[str, Any]]: ...

    def parse_metadata(self, isbn: str, book: dict[str, Any]) -> BookMetadata: ...


@dataclass
class BatchEntry:
    """Outcome for one requested identifier."""

    status: BatchStatus
    isbn: str | None = None
    metadata: BookMetadata | None = None
    from_cache: bool = False
    error: str | None = None


@dataclass
class BatchReport:
    """Every requested identifier, mapped to its outcome."""

    entries: dict[str, BatchEntry] = field(default_factory=dict)
    provider_calls: int = 0

    def with_status(self, status: BatchStatus) -> list[str]:
        return [key for key, entry in self.entries.items() if entry.status == status]

    @property
    def found(self) -> dict[str, BookMetadata]:
        return {
            key: entry.metadata
            for key, entry in self.entries.items()
            if entry.status == BatchStatus.FOUND and entry.metadata is not None
        }

    def summary(self) -> dict[str, int]:
        return {status.value: len(self.with_status(status)) for status in BatchStatus}


class BatchResolver:
    """
    Resolves many ISBNs through one provider call.

    Steps: normalize and deduplicate, answer what the response cache
    already knows, drop ISBNs outside the provider's scope, truncate to the
    provider's batch size keeping the earliest, make one call, then
    demultiplex. ISBNs missing from the response are reported not found and
    cached negatively, so they are not asked for again within the TTL.
    """

    def __init__(
        self,
        provider: BatchProvider,
        cache: ResponseCache,
        max_batch_size: int | None = None,
        scope: Callable[[str], bool] = in_english_scope,
        negative_ttl: int = 86400,
        timeout: float | None = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.max_batch_size = max_batch_size or provider.max_batch_size
        self.scope = scope
        self.negative_ttl = negative_ttl
        self.timeout = timeout

    def _key(self, isbn: str) -> str:
        return self.provider.cache_key(self.provider.BOOK_OPERATION, isbn)

    async def resolve(self, identifiers: list[str]) -> BatchReport:
        report = BatchReport()
        by_isbn: dict[str, list[str]] = {}

        for raw in identifiers:
            if raw in report.entries:
                continue
            isbn = normalize_isbn(raw)
            if isbn is None:
                report.entries[raw] = BatchEntry(status=BatchStatus.INVALID)
                continue
            by_isbn.setdefault(isbn, []).append(raw)

        outcomes: dict[str, BatchEntry] = {}
        pending: list[str] = []
        for isbn in by_isbn:
            cached = await self._from_cache(isbn)
            if cached is not None:
                outcomes[isbn] = cached
            elif not self.scope(isbn):
                outcomes[isbn] = BatchEntry(status=BatchStatus.OUT_OF_SCOPE, isbn=isbn)
            else:
                pending.append(isbn)

        batch, deferred = pending[: self.max_batch_size], pending[self.max_batch_size:]
        if deferred:
            logger.warning(
                f"Batch of {len(pending)} exceeds {self.max_batch_size}, deferring {len(deferred)}"
            )
        for isbn in deferred:
            outcomes[isbn] = BatchEntry(status=BatchStatus.DEFERRED, isbn=isbn)

        if batch:
            outcomes.update(await self._query(batch, report))

        for isbn, raws in by_isbn.items():
            for raw in raws:
                report.entries[raw] = outcomes[isbn]

        logger.info(f"Batch via {self.provider.name}: {report.summary()}")
        return report

    async def _from_cache(self, isbn: str) -> BatchEntry | None:
        lookup = await self.cache.get(self._key(isbn))
        if not lookup.hit:
            return None
        if lookup.absent:
            return BatchEntry(status=BatchStatus.NOT_FOUND, isbn=isbn, from_cache=True)
        try:
            metadata = self.provider.parse_metadata(isbn, lookup.value)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Unreadable cached record for {isbn}, querying again: {e}")
            return None
        return BatchEntry(status=BatchStatus.FOUND, isbn=isbn, metadata=metadata, from_cache=True)

    async def _query(self, batch: list[str], report: BatchReport) -> dict[str, BatchEntry]:
        if not await self.provider.is_available():
            logger.warning(f"{self.provider.name} unavailable, batch of {len(batch)} not sent")
            return self._failed(batch, "provider unavailable")

        report.provider_calls += 1
        try:
            async with asyncio.timeout(self.timeout):
                records = await self.provider.batch_lookup(batch)
        except TimeoutError:
            logger.warning(f"Batch call to {self.provider.name} timed out")
            return self._failed(batch, "timeout")
        except ProviderError as e:
            logger.warning(f"Batch call to {self.provider.name} failed: {e.message}")
            return self._failed(batch, e.message)
        except Exception as e:
            logger.exception(f"Batch call to {self.provider.name} raised unexpectedly: {e}")
            return self._failed(batch, str(e))

        outcomes: dict[str, BatchEntry] = {}
        for isbn in batch:
            book = records.get(isbn)
            if book is None:
                await self.cache.put(self._key(isbn), None, ttl=self.negative_ttl)
                outcomes[isbn] = BatchEntry(status=BatchStatus.NOT_FOUND, isbn=isbn)
                continue
            try:
                metadata = self.provider.parse_metadata(isbn, book)
            except (ValueError, TypeError, AttributeError) as e:
                # Not cached, so a redelivery asks again
                logger.warning(f"Malformed {self.provider.name} record for {isbn}: {e}")
                outcomes[isbn] = BatchEntry(
                    status=BatchStatus.FAILED, isbn=isbn, error="Malformed provider record"
                )
                continue
            await self.cache.put(self._key(isbn), book, ttl=self.provider.CACHE_TTL)
            outcomes[isbn] = BatchEntry(status=BatchStatus.FOUND, isbn=isbn, metadata=metadata)
        return outcomes

    @staticmethod
    def _failed(batch: list[str], error: str) -> dict[str, BatchEntry]:
        return {
            isbn: BatchEntry(status=BatchStatus.FAILED, isbn=isbn, error=error) for isbn in batch
        }
