"""Tests for the batch metadata resolver."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
import respx
from httpx import Response

from bibresolve.cache.keys import CacheKeys
from bibresolve.cache.response import ResponseCache
from bibresolve.core.models import BookMetadata
from bibresolve.core.types import BatchStatus, ProviderName
from bibresolve.resolution.providers.isbndb import ISBNdbProvider
from bibresolve.services.batch import BatchResolver

BOOKS_URL = "https://api2.isbndb.com/books"

ORWELL = "9780451524935"
PAPERBACK = "9780452284234"
HARDCOVER = "9780547249643"
FRENCH = "9782070368228"


@pytest.fixture
def provider(context) -> ISBNdbProvider:
    return ISBNdbProvider(context)


@pytest.fixture
def resolver(provider: ISBNdbProvider, context) -> BatchResolver:
    return BatchResolver(provider, context.cache)


class SlowProvider:
    """Batch provider whose call never finishes in time."""

    BOOK_OPERATION = "book"
    CACHE_TTL = 60
    name = "slow"
    max_batch_size = 10

    def cache_key(self, operation: str, identifier: str) -> str:
        return CacheKeys.response(self.name, operation, identifier)

    async def is_available(self) -> bool:
        return True

    async def batch_lookup(self, isbns: list[str]) -> dict[str, dict[str, Any]]:
        await asyncio.sleep(10)
        return {}

    def parse_metadata(self, isbn: str, book: dict[str, Any]) -> BookMetadata:
        return BookMetadata(isbn13=isbn, source=self.name)


# ============================================================================
# Status Tests
# ============================================================================


class TestBatchStatuses:
    """Every requested identifier gets exactly one status."""

    @respx.mock
    async def test_found_and_not_found(self, resolver: BatchResolver, isbndb_book):
        route = respx.post(BOOKS_URL).mock(
            return_value=Response(200, json={"data": [isbndb_book]})
        )

        report = await resolver.resolve([ORWELL, PAPERBACK])

        assert route.call_count == 1
        assert json.loads(route.calls[0].request.content) == {"isbns": [ORWELL, PAPERBACK]}
        assert report.entries[ORWELL].status == BatchStatus.FOUND
        assert report.entries[ORWELL].metadata.title == "1984 (Signet Classics)"
        assert report.entries[PAPERBACK].status == BatchStatus.NOT_FOUND
        assert report.provider_calls == 1
        assert list(report.found) == [ORWELL]

    async def test_invalid_keyed_by_raw_input(self, resolver: BatchResolver):
        report = await resolver.resolve(["not-an-isbn", "9780451524936"])

        assert report.entries["not-an-isbn"].status == BatchStatus.INVALID
        assert report.entries["9780451524936"].status == BatchStatus.INVALID
        assert report.provider_calls == 0

    async def test_out_of_scope_not_sent(self, resolver: BatchResolver):
        report = await resolver.resolve([FRENCH])

        assert report.entries[FRENCH].status == BatchStatus.OUT_OF_SCOPE
        assert report.provider_calls == 0

    @respx.mock
    async def test_deferred_beyond_batch_size(self, provider: ISBNdbProvider, context):
        route = respx.post(BOOKS_URL).mock(return_value=Response(200, json={"data": []}))
        resolver = BatchResolver(provider, context.cache, max_batch_size=2)

        report = await resolver.resolve([ORWELL, PAPERBACK, HARDCOVER])

        assert json.loads(route.calls[0].request.content)["isbns"] == [ORWELL, PAPERBACK]
        assert report.entries[HARDCOVER].status == BatchStatus.DEFERRED
        assert report.summary() == {
            "found": 0,
            "not_found": 2,
            "invalid": 0,
            "out_of_scope": 0,
            "deferred": 1,
            "failed": 0,
        }

    @respx.mock
    async def test_duplicates_share_one_entry(self, resolver: BatchResolver, isbndb_book):
        route = respx.post(BOOKS_URL).mock(
            return_value=Response(200, json={"data": [isbndb_book]})
        )

        report = await resolver.resolve(["0451524934", ORWELL, "978-0-451-52493-5"])

        assert json.loads(route.calls[0].request.content)["isbns"] == [ORWELL]
        assert len(report.entries) == 3
        assert {entry.status for entry in report.entries.values()} == {BatchStatus.FOUND}
        assert report.entries["0451524934"] is report.entries[ORWELL]


# ============================================================================
# Cache Tests
# ============================================================================


class TestBatchCache:
    """Tests for positive and negative caching across runs."""

    @respx.mock
    async def test_second_run_served_from_cache(self, resolver: BatchResolver, isbndb_book):
        route = respx.post(BOOKS_URL).mock(
            return_value=Response(200, json={"data": [isbndb_book]})
        )

        await resolver.resolve([ORWELL, PAPERBACK])
        report = await resolver.resolve([ORWELL, PAPERBACK])

        assert route.call_count == 1
        assert report.provider_calls == 0
        assert report.entries[ORWELL].status == BatchStatus.FOUND
        assert report.entries[ORWELL].from_cache is True
        assert report.entries[PAPERBACK].status == BatchStatus.NOT_FOUND
        assert report.entries[PAPERBACK].from_cache is True

    @respx.mock
    async def test_negative_entries_use_negative_ttl(self, provider, context, store):
        respx.post(BOOKS_URL).mock(return_value=Response(200, json={"data": []}))
        resolver = BatchResolver(provider, context.cache, negative_ttl=120)

        await resolver.resolve([PAPERBACK])

        assert store.ttls[provider.cache_key("book", PAPERBACK)] == 120

    @respx.mock
    async def test_single_lookup_reads_batch_cache(self, resolver, provider, isbndb_book):
        respx.post(BOOKS_URL).mock(return_value=Response(200, json={"data": [isbndb_book]}))
        single = respx.get(f"https://api2.isbndb.com/book/{ORWELL}")

        await resolver.resolve([ORWELL])
        metadata = await provider.fetch_metadata(ORWELL)

        assert metadata.publisher == "Signet Classics"
        assert single.call_count == 0


# ============================================================================
# Failure Tests
# ============================================================================


class TestBatchFailures:
    """Tests for provider faults marking the batch failed."""

    @respx.mock
    async def test_server_error(self, resolver: BatchResolver, context):
        respx.post(BOOKS_URL).mock(return_value=Response(500))

        report = await resolver.resolve([ORWELL, PAPERBACK])

        assert report.with_status(BatchStatus.FAILED) == [ORWELL, PAPERBACK]
        assert report.provider_calls == 1
        # Failures are not cached
        lookup = await context.cache.get(CacheKeys.response(ProviderName.ISBNDB, "book", ORWELL))
        assert lookup.hit is False

    @respx.mock
    async def test_quota_exhausted(self, resolver: BatchResolver, context):
        route = respx.post(BOOKS_URL)
        quota = context.quota_for(ProviderName.ISBNDB)
        await context.store.set(CacheKeys.quota_usage(quota.provider, quota.current_window()), 90)

        report = await resolver.resolve([ORWELL])

        assert route.call_count == 0
        assert report.provider_calls == 0
        assert report.entries[ORWELL].status == BatchStatus.FAILED
        assert report.entries[ORWELL].error == "provider unavailable"

    async def test_timeout(self, context):
        resolver = BatchResolver(SlowProvider(), ResponseCache(context.store), timeout=0.01)

        report = await resolver.resolve([ORWELL])

        assert report.entries[ORWELL].status == BatchStatus.FAILED
        assert report.entries[ORWELL].error == "timeout"
        assert report.provider_calls == 1

    @respx.mock
    async def test_malformed_record_fails_alone(self, resolver: BatchResolver, context, isbndb_book):
        broken = dict(isbndb_book, isbn13=PAPERBACK, pages="n/a")
        respx.post(BOOKS_URL).mock(
            return_value=Response(200, json={"data": [isbndb_book, broken]})
        )

        report = await resolver.resolve([ORWELL, PAPERBACK])

        assert report.entries[ORWELL].status == BatchStatus.FOUND
        assert report.entries[PAPERBACK].status == BatchStatus.FAILED
        assert report.entries[PAPERBACK].error == "Malformed provider record"
        lookup = await context.cache.get(
            CacheKeys.response(ProviderName.ISBNDB, "book", PAPERBACK)
        )
        assert lookup.hit is False

    @respx.mock
    async def test_provider_batch_fetch_skips_malformed(self, provider: ISBNdbProvider, isbndb_book):
        broken = dict(isbndb_book, isbn13=PAPERBACK, pages="n/a")
        respx.post(BOOKS_URL).mock(
            return_value=Response(200, json={"data": [isbndb_book, broken]})
        )

        results = await provider.batch_fetch_metadata([ORWELL, PAPERBACK])

        assert list(results) == [ORWELL]
