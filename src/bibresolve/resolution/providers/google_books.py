"""Google Books provider."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from bibresolve.cache.keys import CacheKeys
from bibresolve.core.exceptions import ProviderResponseError
from bibresolve.core.identifiers import normalize_isbn
from bibresolve.core.models import (
    BookMetadata,
    CoverResult,
    ExternalIds,
    ExternalIdsResult,
    ISBNResolution,
    PublicDomainResult,
    SubjectsResult,
    TitleQuery,
)
from bibresolve.core.normalization import extract_year
from bibresolve.core.types import (
    Capability,
    CoverSize,
    ProviderClass,
    ProviderName,
    PublicDomainReason,
)
from bibresolve.resolution.base import DAY, BaseProvider
from bibresolve.resolution.scoring import (
    GOOGLE_BOOKS_PROFILE,
    MatchSignals,
    score_candidate,
    score_record,
)

logger = logging.getLogger(__name__)


class GoogleBooksProvider(BaseProvider):
    """
    Google Books volumes API.

    API Documentation: https://developers.google.com/books/docs/v1/using

    An API key is optional and only raises the daily allowance. Public
    domain verdicts come straight from ``accessInfo.accessViewStatus``.
    """

    NAME: ClassVar[str] = ProviderName.GOOGLE_BOOKS
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.FREE
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset({
        Capability.RESOLVE_ISBN,
        Capability.FETCH_METADATA,
        Capability.FETCH_COVER,
        Capability.FETCH_SUBJECTS,
        Capability.CHECK_PUBLIC_DOMAIN,
        Capability.FETCH_EXTERNAL_IDS,
    })
    BASE_URL: ClassVar[str] = "https://www.googleapis.com/books/v1"
    RATE_LIMIT_INTERVAL: ClassVar[float] = 1.0
    CACHE_TTL: ClassVar[int] = 30 * DAY
    SCORING = GOOGLE_BOOKS_PROFILE

    API_KEY_SECRET: ClassVar[str] = "GOOGLE_BOOKS_API_KEY"

    async def _search(self, q: str, max_results: int) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"q": q, "maxResults": max_results}
        try:
            api_key = await self.context.secrets.get_secret(self.API_KEY_SECRET)
        except Exception as e:
            logger.debug(f"Google Books key unavailable, using anonymous quota: {e}")
            api_key = None
        if api_key:
            params["key"] = api_key

        data = await self._get_json("/volumes", params=params)
        if data is None:
            return []
        if not isinstance(data, dict):
            raise ProviderResponseError("Volumes response is not an object", source=self.NAME)
        items = data.get("items") or []
        if not isinstance(items, list):
            raise ProviderResponseError("Volumes response items is not a list", source=self.NAME)
        return items

    async def _volume(self, isbn: str) -> dict[str, Any] | None:
        """First volume for an ISBN, cached."""

        async def load() -> dict[str, Any] | None:
            items = await self._search(f"isbn:{isbn}", max_results=1)
            return items[0] if items else None

        return await self._cached_fetch("volume", isbn, load)

    async def resolve_isbn(self, title: str, author: str = "") -> ISBNResolution | None:
        query = TitleQuery(title=title, author=author)
        q = f'intitle:"{title}"'
        if author:
            q += f'+inauthor:"{author}"'

        async def load() -> list[dict[str, Any]] | None:
            return await self._search(q, max_results=5) or None

        items = await self._cached_fetch(
            Capability.RESOLVE_ISBN, CacheKeys.title_query(title, author), load
        )
        for item in items or []:
            info = item.get("volumeInfo") or {}
            isbn = _volume_isbn(info)
            if isbn is None:
                continue
            confidence = score_candidate(query, self._signals(info), self.SCORING)
            logger.info(f"Resolved '{title}' via Google Books: {isbn} ({confidence})")
            return ISBNResolution(
                isbn=isbn,
                title=info.get("title"),
                authors=info.get("authors", []),
                source=self.NAME,
                confidence=confidence,
            )
        return None

    async def fetch_metadata(self, isbn: str) -> BookMetadata | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        volume = await self._volume(normalized)
        if not volume:
            return None

        info = volume.get("volumeInfo") or {}
        identifiers = _industry_identifiers(info)
        return BookMetadata(
            isbn13=identifiers.get("ISBN_13") or normalized,
            isbn10=identifiers.get("ISBN_10"),
            title=info.get("title", ""),
            subtitle=info.get("subtitle"),
            authors=info.get("authors", []),
            publisher=info.get("publisher"),
            publish_date=info.get("publishedDate"),
            page_count=info.get("pageCount"),
            language=info.get("language"),
            description=info.get("description"),
            subjects=info.get("categories", []),
            cover_url=_https(_thumbnail(info)),
            external_ids=ExternalIds(google_books_id=volume.get("id")),
            source=self.NAME,
            confidence=score_record(self._signals(info), self.SCORING),
        )

    async def fetch_cover(self, isbn: str, size: CoverSize = CoverSize.LARGE) -> CoverResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        volume = await self._volume(normalized)
        thumbnail = _thumbnail((volume or {}).get("volumeInfo") or {})
        if not thumbnail:
            return None
        # Google only serves thumbnail-sized images
        return CoverResult(
            url=_https(thumbnail),
            size=CoverSize.MEDIUM,
            source=self.NAME,
            confidence=75,
        )

    async def fetch_subjects(self, isbn: str) -> SubjectsResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        volume = await self._volume(normalized)
        categories = ((volume or {}).get("volumeInfo") or {}).get("categories") or []
        if not categories:
            return None
        return SubjectsResult(subjects=categories, source=self.NAME, confidence=75)

    async def check_public_domain(self, isbn: str) -> PublicDomainResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        volume = await self._volume(normalized)
        access = (volume or {}).get("accessInfo")
        if not access:
            return None

        download_url = (access.get("pdf") or {}).get("downloadLink") or (
            access.get("epub") or {}
        ).get("downloadLink")
        is_public_domain = access.get("accessViewStatus") == "FULL_PUBLIC_DOMAIN"
        logger.debug(
            f"Google Books public domain for {normalized}: {is_public_domain} "
            f"({access.get('accessViewStatus')})"
        )
        return PublicDomainResult(
            is_public_domain=is_public_domain,
            reason=PublicDomainReason.API_VERIFIED,
            download_url=download_url,
            source=self.NAME,
            confidence=95,
        )

    async def fetch_external_ids(self, isbn: str) -> ExternalIdsResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        volume = await self._volume(normalized)
        if not volume or not volume.get("id"):
            return None
        return ExternalIdsResult(
            ids=ExternalIds(google_books_id=volume["id"]),
            source=self.NAME,
            confidence=85,
        )

    @staticmethod
    def _signals(info: dict[str, Any]) -> MatchSignals:
        return MatchSignals(
            title=info.get("title"),
            authors=tuple(info.get("authors", [])),
            has_description=bool(info.get("description")),
            has_subjects=bool(info.get("categories")),
            has_cover=bool(_thumbnail(info)),
            publication_year=extract_year(info.get("publishedDate")),
        )


def _industry_identifiers(info: dict[str, Any]) -> dict[str, str]:
    return {
        entry.get("type", ""): entry.get("identifier", "")
        for entry in info.get("industryIdentifiers") or []
    }


def _volume_isbn(info: dict[str, Any]) -> str | None:
    identifiers = _industry_identifiers(info)
    for kind in ("ISBN_13", "ISBN_10"):
        if normalized := normalize_isbn(identifiers.get(kind)):
            return normalized
    return None


def _thumbnail(info: dict[str, Any]) -> str | None:
    links = info.get("imageLinks") or {}
    return links.get("thumbnail") or links.get("smallThumbnail")


def _https(url: str | None) -> str | None:
    if url and url.startswith("http:"):
        return "https:" + url[len("http:"):]
    return url
