"""ISBNdb provider (paid, metered)."""

from __future__ import annotations

import logging
from typing import Any, ClassVar
from urllib.parse import quote

from bibresolve.cache.keys import CacheKeys
from bibresolve.core.exceptions import ProviderResponseError
from bibresolve.core.identifiers import deduplicate_isbns, isbn10_for, normalize_isbn
from bibresolve.core.models import (
    BookMetadata,
    CoverResult,
    EditionVariant,
    ExternalIds,
    ISBNResolution,
    RatingsResult,
    TitleQuery,
)
from bibresolve.core.types import Capability, CoverSize, EditionFormat, ProviderClass, ProviderName
from bibresolve.resolution.base import DAY, BaseProvider
from bibresolve.resolution.scoring import (
    ISBNDB_PROFILE,
    MatchSignals,
    score_candidate,
    score_record,
)

logger = logging.getLogger(__name__)

# Hard limit of the POST /books endpoint
MAX_BATCH_SIZE = 1000

# Checked in order; "mass market paperback" is a paperback
BINDING_KEYWORDS: list[tuple[EditionFormat, tuple[str, ...]]] = [
    (EditionFormat.HARDCOVER, ("hardcover", "hard cover")),
    (EditionFormat.PAPERBACK, ("paperback", "paper back")),
    (EditionFormat.MASS_MARKET, ("mass market", "mass-market")),
    (EditionFormat.EBOOK, ("ebook", "e-book", "epub", "kindle")),
    (EditionFormat.AUDIOBOOK, ("audiobook", "audio book", "audio cd")),
    (EditionFormat.LIBRARY_BINDING, ("library",)),
]


def normalize_binding(binding: str) -> EditionFormat:
    """Map a free-text binding description onto an edition format."""
    normalized = binding.lower().strip()
    for edition_format, keywords in BINDING_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return edition_format
    return EditionFormat.OTHER


def record_isbn(book: dict[str, Any]) -> str | None:
    """Normalized ISBN-13 of a book record."""
    return normalize_isbn(book.get("isbn13")) or normalize_isbn(book.get("isbn"))


class ISBNdbProvider(BaseProvider):
    """
    ISBNdb API v2.

    API Documentation: https://isbndb.com/apidocs/v2

    Every HTTP attempt costs one call from the daily quota, whether it
    succeeds or not. The batch endpoint resolves up to 1000 ISBNs for the
    price of one call, so bulk enrichment should go through ``batch_lookup``.
    """

    NAME: ClassVar[str] = ProviderName.ISBNDB
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.PAID
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset({
        Capability.RESOLVE_ISBN,
        Capability.FETCH_METADATA,
        Capability.FETCH_COVER,
        Capability.FETCH_RATINGS,
        Capability.FETCH_EDITION_VARIANTS,
    })
    RATE_LIMIT_INTERVAL: ClassVar[float] = 0.333
    CACHE_TTL: ClassVar[int] = 30 * DAY
    CREDENTIAL: ClassVar[str | None] = "ISBNDB_API_KEY"
    SCORING = ISBNDB_PROFILE

    # Operation under which single and batch lookups cache the raw book record
    BOOK_OPERATION: ClassVar[str] = "book"

    @property
    def base_url(self) -> str:
        return self.settings.isbndb_base_url

    @property
    def max_batch_size(self) -> int:
        return min(self.settings.isbndb_max_batch_size, MAX_BATCH_SIZE)

    async def _auth_headers(self) -> dict[str, str]:
        api_key = await self._credential()
        return {"Authorization": api_key} if api_key else {}

    async def is_available(self) -> bool:
        """Credential present and the quota breaker closed."""
        if not await super().is_available():
            return False
        quota = self.quota
        if quota is None:
            return True
        check = await quota.check_quota(1)
        if not check.allowed:
            logger.warning(f"ISBNdb unavailable: {check.reason}")
        return check.allowed

    async def _book(self, isbn: str) -> dict[str, Any] | None:
        """Raw book record for one ISBN-13, cached."""

        async def load() -> dict[str, Any] | None:
            data = await self._get_json(f"/book/{isbn}")
            if data is None:
                return None
            if not isinstance(data, dict):
                raise ProviderResponseError("Book response is not an object", source=self.NAME)
            return data.get("book") or None

        return await self._cached_fetch(self.BOOK_OPERATION, isbn, load)

    async def batch_lookup(self, isbns: list[str]) -> dict[str, dict[str, Any]]:
        """
        Raw book records for many ISBNs in one POST /books call.

        Bypasses the response cache; callers doing bulk work own the
        per-ISBN cache entries. ISBNs missing from the result were not found.

        Raises:
            ValueError: more ISBNs than the endpoint accepts
        """
        if not isbns:
            return {}
        if len(isbns) > MAX_BATCH_SIZE:
            raise ValueError(
                f"ISBNdb batch accepts at most {MAX_BATCH_SIZE} ISBNs, got {len(isbns)}"
            )

        data = await self._get_json("/books", method="POST", json={"isbns": isbns})
        if data is None:
            return {}
        books = data.get("data", data.get("books")) if isinstance(data, dict) else None
        if not isinstance(books, list):
            raise ProviderResponseError("Batch response has no data list", source=self.NAME)

        records: dict[str, dict[str, Any]] = {}
        for book in books:
            if isinstance(book, dict) and (isbn := record_isbn(book)):
                records[isbn] = book
        logger.info(f"ISBNdb batch lookup: requested {len(isbns)}, retrieved {len(records)}")
        return records

    async def batch_fetch_metadata(self, isbns: list[str]) -> dict[str, BookMetadata]:
        """Metadata for up to ``max_batch_size`` ISBNs; extra ISBNs are ignored."""
        valid = deduplicate_isbns(isbns)[: self.max_batch_size]
        records = await self.batch_lookup(valid)
        results: dict[str, BookMetadata] = {}
        for isbn, book in records.items():
            try:
                results[isbn] = self.parse_metadata(isbn, book)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed ISBNdb record for {isbn}: {e}")
        return results

    async def batch_fetch_ratings(self, isbns: list[str]) -> dict[str, RatingsResult]:
        valid = deduplicate_isbns(isbns)[: self.max_batch_size]
        records = await self.batch_lookup(valid)
        ratings = {}
        for isbn, book in records.items():
            if (result := self.parse_ratings(book)) is not None:
                ratings[isbn] = result
        return ratings

    async def resolve_isbn(self, title: str, author: str = "") -> ISBNResolution | None:
        query = TitleQuery(title=title, author=author)

        async def load() -> list[dict[str, Any]] | None:
            search = quote(f"{title} {author}".strip(), safe="")
            data = await self._get_json(f"/books/{search}", params={"pageSize": 5})
            if data is not None and not isinstance(data, dict):
                raise ProviderResponseError("Search response is not an object", source=self.NAME)
            return (data or {}).get("books") or None

        books = await self._cached_fetch(
            Capability.RESOLVE_ISBN, CacheKeys.title_query(title, author), load
        )
        for book in books or []:
            isbn = record_isbn(book)
            if isbn is None:
                continue
            confidence = score_candidate(query, self._signals(book), self.SCORING)
            logger.info(f"Resolved '{title}' via ISBNdb: {isbn} ({confidence})")
            return ISBNResolution(
                isbn=isbn,
                title=book.get("title"),
                authors=book.get("authors") or [],
                source=self.NAME,
                confidence=confidence,
            )
        return None

    async def fetch_metadata(self, isbn: str) -> BookMetadata | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        book = await self._book(normalized)
        return self.parse_metadata(normalized, book) if book else None

    async def fetch_cover(self, isbn: str, size: CoverSize = CoverSize.LARGE) -> CoverResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        book = await self._book(normalized)
        if not book or not book.get("image"):
            return None
        return CoverResult(url=book["image"], size=CoverSize.LARGE, source=self.NAME, confidence=85)

    async def fetch_ratings(self, isbn: str) -> RatingsResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        book = await self._book(normalized)
        return self.parse_ratings(book) if book else None

    async def fetch_edition_variants(self, isbn: str) -> list[EditionVariant] | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        book = await self._book(normalized)
        related = (book or {}).get("related") or {}
        variants = []
        for related_isbn, binding in related.items():
            variant_isbn = normalize_isbn(related_isbn)
            if variant_isbn is None or variant_isbn == normalized:
                continue
            variants.append(EditionVariant(
                isbn=variant_isbn,
                format=normalize_binding(str(binding)),
                format_description=str(binding),
                source=self.NAME,
                confidence=90,
            ))
        logger.debug(f"ISBNdb edition variants for {normalized}: {len(variants)}")
        return variants or None

    def parse_metadata(self, isbn: str, book: dict[str, Any]) -> BookMetadata:
        related = {
            variant: str(binding)
            for raw, binding in (book.get("related") or {}).items()
            if (variant := normalize_isbn(raw))
        }
        dewey = book.get("dewey_decimal") or []
        return BookMetadata(
            isbn13=isbn,
            isbn10=isbn10_for(isbn),
            title=book.get("title_long") or book.get("title") or "",
            authors=book.get("authors") or [],
            publisher=book.get("publisher"),
            publish_date=book.get("date_published"),
            page_count=book.get("pages"),
            language=book.get("language"),
            description=book.get("synopsis"),
            subjects=book.get("subjects") or [],
            cover_url=book.get("image"),
            binding=book.get("binding"),
            dewey_decimal=dewey if isinstance(dewey, list) else [str(dewey)],
            related_isbns=related,
            external_ids=ExternalIds(isbndb_id=isbn),
            source=self.NAME,
            confidence=score_record(self._signals(book), self.SCORING),
        )

    def parse_ratings(self, book: dict[str, Any]) -> RatingsResult | None:
        average, count = book.get("rating_avg"), book.get("rating_count")
        if average is None or count is None:
            return None
        return RatingsResult(
            average_rating=float(average),
            ratings_count=int(count),
            source=self.NAME,
            confidence=90,
        )

    @staticmethod
    def _signals(book: dict[str, Any]) -> MatchSignals:
        return MatchSignals(
            title=book.get("title"),
            authors=tuple(book.get("authors") or ()),
        )
