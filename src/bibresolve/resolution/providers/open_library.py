"""Open Library provider."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from bibresolve.cache.keys import CacheKeys
from bibresolve.core.exceptions import ProviderResponseError
from bibresolve.core.identifiers import isbn10_for, normalize_isbn
from bibresolve.core.models import (
    BookMetadata,
    CoverResult,
    ExternalIds,
    ISBNResolution,
    SubjectsResult,
    TitleQuery,
)
from bibresolve.core.normalization import extract_year
from bibresolve.core.types import Capability, CoverSize, ProviderClass, ProviderName
from bibresolve.resolution.base import DAY, BaseProvider
from bibresolve.resolution.scoring import (
    OPEN_LIBRARY_PROFILE,
    MatchSignals,
    score_candidate,
    score_record,
)

logger = logging.getLogger(__name__)

SEARCH_FIELDS = (
    "key,title,subtitle,author_name,author_key,first_publish_year,isbn,"
    "edition_count,publisher,language,cover_i,subject,number_of_pages_median"
)

COVER_SIZE_CODES = {
    CoverSize.SMALL: "S",
    CoverSize.MEDIUM: "M",
    CoverSize.LARGE: "L",
    CoverSize.ORIGINAL: "L",
}


class OpenLibraryProvider(BaseProvider):
    """
    Open Library search API.

    API Documentation: https://openlibrary.org/dev/docs/api/search

    Free and keyless. Open Library asks for no more than 100 requests per
    5 minutes, so requests are spaced 3 seconds apart.
    """

    NAME: ClassVar[str] = ProviderName.OPEN_LIBRARY
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.FREE
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset({
        Capability.RESOLVE_ISBN,
        Capability.FETCH_METADATA,
        Capability.FETCH_COVER,
        Capability.FETCH_SUBJECTS,
    })
    BASE_URL: ClassVar[str] = "https://openlibrary.org"
    COVERS_URL: ClassVar[str] = "https://covers.openlibrary.org"
    RATE_LIMIT_INTERVAL: ClassVar[float] = 3.0
    CACHE_TTL: ClassVar[int] = 7 * DAY
    SCORING = OPEN_LIBRARY_PROFILE
    PURPOSE = "Book metadata enrichment and ISBN resolution"

    async def _search(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        data = await self._get_json("/search.json", params={"fields": SEARCH_FIELDS, **params})
        if data is None:
            return []
        if not isinstance(data, dict) or not isinstance(data.get("docs", []), list):
            raise ProviderResponseError("Search response has no docs list", source=self.NAME)
        return data.get("docs", [])

    async def _lookup(self, isbn: str) -> dict[str, Any] | None:
        """Search document for one ISBN, cached."""

        async def load() -> dict[str, Any] | None:
            docs = await self._search({"isbn": isbn, "limit": 1})
            return docs[0] if docs else None

        return await self._cached_fetch("search", isbn, load)

    async def resolve_isbn(self, title: str, author: str = "") -> ISBNResolution | None:
        """Search by title/author and return the first result that carries an ISBN."""
        query = TitleQuery(title=title, author=author)

        async def load() -> list[dict[str, Any]] | None:
            params: dict[str, Any] = {"title": title, "limit": 5}
            if author:
                params["author"] = author
            return await self._search(params) or None

        docs = await self._cached_fetch(
            Capability.RESOLVE_ISBN, CacheKeys.title_query(title, author), load
        )
        for doc in docs or []:
            isbn = _best_isbn(doc.get("isbn", []))
            if isbn is None:
                continue
            confidence = score_candidate(query, self._signals(doc), self.SCORING)
            logger.info(f"Resolved '{title}' via Open Library: {isbn} ({confidence})")
            return ISBNResolution(
                isbn=isbn,
                title=doc.get("title"),
                authors=doc.get("author_name", []),
                source=self.NAME,
                confidence=confidence,
            )

        logger.debug(f"No Open Library ISBN for '{title}' / '{author}'")
        return None

    async def fetch_metadata(self, isbn: str) -> BookMetadata | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        doc = await self._lookup(normalized)
        return self._parse_metadata(normalized, doc) if doc else None

    async def fetch_cover(self, isbn: str, size: CoverSize = CoverSize.LARGE) -> CoverResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        doc = await self._lookup(normalized)
        if not doc or not doc.get("cover_i"):
            return None
        return CoverResult(
            url=self._cover_url(doc["cover_i"], size),
            size=size if size != CoverSize.ORIGINAL else CoverSize.LARGE,
            source=self.NAME,
            confidence=80,
        )

    async def fetch_subjects(self, isbn: str) -> SubjectsResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        doc = await self._lookup(normalized)
        subjects = (doc or {}).get("subject") or []
        if not subjects:
            return None
        return SubjectsResult(subjects=subjects[:20], source=self.NAME, confidence=70)

    def _cover_url(self, cover_id: int | str, size: CoverSize) -> str:
        return f"{self.COVERS_URL}/b/id/{cover_id}-{COVER_SIZE_CODES[size]}.jpg"

    @staticmethod
    def _signals(doc: dict[str, Any]) -> MatchSignals:
        return MatchSignals(
            title=doc.get("title"),
            authors=tuple(doc.get("author_name", [])),
            has_subjects=bool(doc.get("subject")),
            has_cover=bool(doc.get("cover_i")),
            publication_year=extract_year(doc.get("first_publish_year")),
        )

    def _parse_metadata(self, isbn: str, doc: dict[str, Any]) -> BookMetadata:
        work_key = doc.get("key", "")
        publishers = doc.get("publisher") or []
        languages = doc.get("language") or []
        return BookMetadata(
            isbn13=isbn,
            isbn10=isbn10_for(isbn),
            title=doc.get("title", ""),
            subtitle=doc.get("subtitle"),
            authors=doc.get("author_name", []),
            publisher=publishers[0] if publishers else None,
            publish_date=str(doc["first_publish_year"]) if doc.get("first_publish_year") else None,
            page_count=doc.get("number_of_pages_median"),
            language=languages[0] if languages else None,
            subjects=(doc.get("subject") or [])[:20],
            cover_url=self._cover_url(doc["cover_i"], CoverSize.LARGE) if doc.get("cover_i") else None,
            external_ids=ExternalIds(
                open_library_id=work_key.removeprefix("/works/") or None,
            ),
            source=self.NAME,
            confidence=score_record(self._signals(doc), self.SCORING),
        )


def _best_isbn(candidates: list[str]) -> str | None:
    """First valid ISBN, preferring ones already in 13-digit form."""
    ordered = sorted(candidates, key=lambda value: len(value) != 13)
    for raw in ordered:
        if normalized := normalize_isbn(raw):
            return normalized
    return None
