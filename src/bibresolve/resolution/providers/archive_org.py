"""Internet Archive provider."""

from __future__ import annotations

import logging
import re
from typing import Any, ClassVar

from bibresolve.cache.keys import CacheKeys
from bibresolve.core.exceptions import ProviderResponseError
from bibresolve.core.identifiers import isbn10_for, normalize_isbn
from bibresolve.core.models import (
    BookMetadata,
    CoverResult,
    ExternalIds,
    ISBNResolution,
    PublicDomainResult,
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
    ARCHIVE_ORG_PROFILE,
    MatchSignals,
    score_candidate,
    score_record,
)

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ["identifier", "title", "creator", "publisher", "date", "description", "subject", "isbn"]

# US copyright: works published before 1928 have entered the public domain;
# 1928-1977 works are public domain only if the copyright was not renewed.
PUBLIC_DOMAIN_CUTOFF_YEAR = 1928
RENEWAL_ERA_END_YEAR = 1977

_LUCENE_SPECIAL = re.compile(r'([+\-&|!(){}\[\]^"~*?:\\/])')


def escape_lucene(value: str) -> str:
    """Escape Lucene query syntax characters."""
    return _LUCENE_SPECIAL.sub(r"\\\1", value)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value if v]
    return [str(value)]


class ArchiveOrgProvider(BaseProvider):
    """
    Internet Archive advanced search.

    API Documentation: https://archive.org/advancedsearch.php

    Strong on older books: its ISBN resolution confidence carries an
    archival bonus for pre-1928 publications, and its public domain verdict
    is a publication-date heuristic.
    """

    NAME: ClassVar[str] = ProviderName.ARCHIVE_ORG
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.FREE
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset({
        Capability.RESOLVE_ISBN,
        Capability.FETCH_METADATA,
        Capability.FETCH_COVER,
        Capability.CHECK_PUBLIC_DOMAIN,
    })
    BASE_URL: ClassVar[str] = "https://archive.org"
    RATE_LIMIT_INTERVAL: ClassVar[float] = 1.0
    CACHE_TTL: ClassVar[int] = 7 * DAY
    SCORING = ARCHIVE_ORG_PROFILE

    async def _search(self, q: str, rows: int) -> list[dict[str, Any]]:
        params = {"q": q, "fl[]": SEARCH_FIELDS, "output": "json", "rows": rows}
        data = await self._get_json("/advancedsearch.php", params=params)
        if data is None:
            return []
        docs = (data.get("response") or {}).get("docs") if isinstance(data, dict) else None
        if not isinstance(docs, list):
            raise ProviderResponseError("Advanced search response has no docs", source=self.NAME)
        return docs

    async def _item(self, isbn: str) -> dict[str, Any] | None:
        """First item for an ISBN, cached."""

        async def load() -> dict[str, Any] | None:
            docs = await self._search(f"isbn:{isbn}", rows=1)
            return docs[0] if docs else None

        return await self._cached_fetch("item", isbn, load)

    async def resolve_isbn(self, title: str, author: str = "") -> ISBNResolution | None:
        query = TitleQuery(title=title, author=author)
        q = f"title:({escape_lucene(title)})"
        if author:
            q += f" AND creator:({escape_lucene(author)})"

        async def load() -> list[dict[str, Any]] | None:
            return await self._search(q, rows=5) or None

        docs = await self._cached_fetch(
            Capability.RESOLVE_ISBN, CacheKeys.title_query(title, author), load
        )
        for doc in docs or []:
            isbn = _best_isbn(_as_list(doc.get("isbn")))
            if isbn is None:
                continue
            confidence = score_candidate(query, self._signals(doc), self.SCORING)
            logger.debug(f"Resolved '{title}' via Archive.org: {isbn} ({confidence})")
            return ISBNResolution(
                isbn=isbn,
                title=doc.get("title"),
                authors=_as_list(doc.get("creator")),
                source=self.NAME,
                confidence=confidence,
            )
        return None

    async def fetch_metadata(self, isbn: str) -> BookMetadata | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        doc = await self._item(normalized)
        if not doc:
            return None

        publishers = _as_list(doc.get("publisher"))
        descriptions = _as_list(doc.get("description"))
        identifier = doc.get("identifier")
        return BookMetadata(
            isbn13=normalized,
            isbn10=isbn10_for(normalized),
            title=doc.get("title") or "",
            authors=_as_list(doc.get("creator")),
            publisher=publishers[0] if publishers else None,
            publish_date=doc.get("date"),
            description=descriptions[0] if descriptions else None,
            subjects=_as_list(doc.get("subject")),
            cover_url=self._cover_url(identifier) if identifier else None,
            external_ids=ExternalIds(archive_org_id=identifier),
            source=self.NAME,
            confidence=score_record(self._signals(doc), self.SCORING),
        )

    async def fetch_cover(self, isbn: str, size: CoverSize = CoverSize.LARGE) -> CoverResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        doc = await self._item(normalized)
        if not doc or not doc.get("identifier"):
            return None
        return CoverResult(
            url=self._cover_url(doc["identifier"]),
            size=CoverSize.LARGE,
            source=self.NAME,
            confidence=70,
        )

    async def check_public_domain(self, isbn: str) -> PublicDomainResult | None:
        """Publication-date heuristic under US copyright rules."""
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        doc = await self._item(normalized)
        if not doc:
            return None

        year = extract_year(doc.get("date"))
        if year is None:
            logger.debug(f"No publication year for {normalized}, cannot judge public domain")
            return None

        if year < PUBLIC_DOMAIN_CUTOFF_YEAR:
            is_public_domain, confidence = True, 90
        elif year <= RENEWAL_ERA_END_YEAR:
            # Renewal status unknown
            is_public_domain, confidence = True, 60
        else:
            is_public_domain, confidence = False, 90

        identifier = doc.get("identifier")
        return PublicDomainResult(
            is_public_domain=is_public_domain,
            reason=PublicDomainReason.PUBLICATION_DATE,
            copyright_expiry=year if year < PUBLIC_DOMAIN_CUTOFF_YEAR else None,
            download_url=f"{self.BASE_URL}/details/{identifier}" if identifier else None,
            source=self.NAME,
            confidence=confidence,
        )

    def _cover_url(self, identifier: str) -> str:
        return f"{self.BASE_URL}/services/img/{identifier}"

    @staticmethod
    def _signals(doc: dict[str, Any]) -> MatchSignals:
        return MatchSignals(
            title=doc.get("title"),
            authors=tuple(_as_list(doc.get("creator"))),
            has_description=bool(doc.get("description")),
            has_subjects=bool(_as_list(doc.get("subject"))),
            publication_year=extract_year(doc.get("date")),
        )


def _digits(value: str) -> str:
    return re.sub(r"[^0-9X]", "", value.upper())


def _best_isbn(candidates: list[str]) -> str | None:
    """Prefer an ISBN-13, then an ISBN-10; skip anything invalid."""
    ordered = sorted(candidates, key=lambda value: len(_digits(value)) != 13)
    for raw in ordered:
        if normalized := normalize_isbn(_digits(raw)):
            return normalized
    return None
