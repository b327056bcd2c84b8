"""Wikidata SPARQL provider."""

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
    ExternalIdsResult,
    ISBNResolution,
    TitleQuery,
)
from bibresolve.core.normalization import dedupe_case_insensitive, extract_year, normalize_title
from bibresolve.core.types import Capability, CoverSize, ProviderClass, ProviderName
from bibresolve.resolution.base import DAY, BaseProvider
from bibresolve.resolution.scoring import (
    WIKIDATA_FUZZY_PROFILE,
    WIKIDATA_PROFILE,
    MatchSignals,
    score_candidate,
    score_record,
)

logger = logging.getLogger(__name__)

ENTITY_PREFIX = "http://www.wikidata.org/entity/"

ISBN_LOOKUP_QUERY = """
SELECT ?book ?bookLabel ?authorLabel ?publishDate ?genreLabel ?image
       ?openLibraryId ?goodreadsId ?libraryThingId
WHERE {{
  ?book wdt:P212 "{isbn}" .
  OPTIONAL {{ ?book wdt:P50 ?author . }}
  OPTIONAL {{ ?book wdt:P577 ?publishDate . }}
  OPTIONAL {{ ?book wdt:P136 ?genre . }}
  OPTIONAL {{ ?book wdt:P18 ?image . }}
  OPTIONAL {{ ?book wdt:P648 ?openLibraryId . }}
  OPTIONAL {{ ?book wdt:P2969 ?goodreadsId . }}
  OPTIONAL {{ ?book wdt:P1085 ?libraryThingId . }}
  SERVICE wikibase:label {{ bd:serviceParam wikibase:language "en". }}
}}
LIMIT 50
"""

TITLE_SEARCH_QUERY = """
SELECT ?book ?bookLabel ?authorLabel ?pubDate ?image
       (GROUP_CONCAT(DISTINCT ?isbn13; separator="|") as ?isbn13s)
       (GROUP_CONCAT(DISTINCT ?isbn10; separator="|") as ?isbn10s)
WHERE {{
  ?book rdfs:label ?bookLabel .
  FILTER(CONTAINS(LCASE(?bookLabel), LCASE("{title}")))
  FILTER(LANG(?bookLabel) = "en")
  ?book wdt:P50 ?author .
  ?author rdfs:label ?authorLabel .
  FILTER(CONTAINS(LCASE(?authorLabel), LCASE("{author}")))
  FILTER(LANG(?authorLabel) = "en")
  OPTIONAL {{ ?book wdt:P212 ?isbn13 . }}
  OPTIONAL {{ ?book wdt:P957 ?isbn10 . }}
  OPTIONAL {{ ?book wdt:P577 ?pubDate . }}
  OPTIONAL {{ ?book wdt:P18 ?image . }}
}}
GROUP BY ?book ?bookLabel ?authorLabel ?pubDate ?image
LIMIT 10
"""


def sanitize_sparql(value: str) -> str:
    """Escape a value for use inside a double-quoted SPARQL literal."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", " ")
        .replace("\r", " ")
    )


def _value(binding: dict[str, Any], name: str) -> str | None:
    cell = binding.get(name)
    if isinstance(cell, dict):
        return cell.get("value") or None
    return None


def _qid(uri: str | None) -> str | None:
    if uri and uri.startswith(ENTITY_PREFIX):
        return uri[len(ENTITY_PREFIX):]
    return None


class WikidataProvider(BaseProvider):
    """
    Wikidata knowledge graph through the public SPARQL endpoint.

    API Documentation: https://query.wikidata.org/

    A book item may carry several authors and genres, which SPARQL returns
    as one row per combination. Rows are folded back into one record here.
    """

    NAME: ClassVar[str] = ProviderName.WIKIDATA
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.FREE
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset({
        Capability.RESOLVE_ISBN,
        Capability.FETCH_METADATA,
        Capability.FETCH_COVER,
        Capability.FETCH_EXTERNAL_IDS,
    })
    BASE_URL: ClassVar[str] = "https://query.wikidata.org"
    RATE_LIMIT_INTERVAL: ClassVar[float] = 0.5
    CACHE_TTL: ClassVar[int] = 30 * DAY
    SCORING = WIKIDATA_PROFILE

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        headers["Accept"] = "application/sparql-results+json"
        return headers

    async def _sparql(self, query: str) -> list[dict[str, Any]]:
        data = await self._get_json("/sparql", params={"query": query, "format": "json"})
        if data is None:
            return []
        bindings = (data.get("results") or {}).get("bindings") if isinstance(data, dict) else None
        if not isinstance(bindings, list):
            raise ProviderResponseError("SPARQL response has no bindings", source=self.NAME)
        return bindings

    async def _book(self, isbn: str) -> list[dict[str, Any]] | None:
        """All result rows for an ISBN-13, cached."""
        safe_isbn = re.sub(r"[^0-9X]", "", isbn)

        async def load() -> list[dict[str, Any]] | None:
            return await self._sparql(ISBN_LOOKUP_QUERY.format(isbn=safe_isbn)) or None

        return await self._cached_fetch("book", safe_isbn, load)

    async def resolve_isbn(self, title: str, author: str = "") -> ISBNResolution | None:
        """Exact title containment first, then a second pass on the normalized title."""
        query = TitleQuery(title=title, author=author)

        for fuzzy in (False, True):
            search_title = normalize_title(title) if fuzzy else title
            if fuzzy and search_title == title.lower():
                break
            bindings = await self._title_search(search_title, author, fuzzy)
            profile = WIKIDATA_FUZZY_PROFILE if fuzzy else WIKIDATA_PROFILE
            for binding in bindings or []:
                isbn = self._binding_isbn(binding)
                if isbn is None:
                    continue
                confidence = score_candidate(query, self._search_signals(binding), profile)
                logger.debug(
                    f"Resolved '{title}' via Wikidata: {isbn} ({confidence}, fuzzy={fuzzy})"
                )
                return ISBNResolution(
                    isbn=isbn,
                    title=_value(binding, "bookLabel"),
                    authors=[a for a in [_value(binding, "authorLabel")] if a],
                    source=self.NAME,
                    confidence=confidence,
                )
        return None

    async def _title_search(
        self, title: str, author: str, fuzzy: bool
    ) -> list[dict[str, Any]] | None:
        sparql = TITLE_SEARCH_QUERY.format(
            title=sanitize_sparql(title), author=sanitize_sparql(author)
        )

        async def load() -> list[dict[str, Any]] | None:
            return await self._sparql(sparql) or None

        operation = f"{Capability.RESOLVE_ISBN}:fuzzy" if fuzzy else Capability.RESOLVE_ISBN
        return await self._cached_fetch(operation, CacheKeys.title_query(title, author), load)

    async def fetch_metadata(self, isbn: str) -> BookMetadata | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        rows = await self._book(normalized)
        if not rows:
            return None

        record = _fold(rows)
        return BookMetadata(
            isbn13=normalized,
            isbn10=isbn10_for(normalized),
            title=record["title"] or "",
            authors=record["authors"],
            publish_date=record["publish_date"],
            subjects=record["genres"],
            cover_url=record["image"],
            external_ids=self._external_ids(record),
            source=self.NAME,
            confidence=score_record(self._record_signals(record), self.SCORING),
        )

    async def fetch_cover(self, isbn: str, size: CoverSize = CoverSize.LARGE) -> CoverResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        rows = await self._book(normalized)
        image = _fold(rows)["image"] if rows else None
        if not image:
            return None
        return CoverResult(url=image, size=CoverSize.LARGE, source=self.NAME, confidence=65)

    async def fetch_external_ids(self, isbn: str) -> ExternalIdsResult | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        rows = await self._book(normalized)
        if not rows:
            return None
        ids = self._external_ids(_fold(rows))
        if not ids.has_any():
            return None
        return ExternalIdsResult(ids=ids, source=self.NAME, confidence=80)

    @staticmethod
    def _external_ids(record: dict[str, Any]) -> ExternalIds:
        return ExternalIds(
            wikidata_id=record["qid"],
            open_library_id=record["open_library_id"],
            goodreads_id=record["goodreads_id"],
            librarything_id=record["librarything_id"],
        )

    @staticmethod
    def _binding_isbn(binding: dict[str, Any]) -> str | None:
        isbn13s = (_value(binding, "isbn13s") or "").split("|")
        isbn10s = (_value(binding, "isbn10s") or "").split("|")
        for raw in [*isbn13s, *isbn10s]:
            if raw and (normalized := normalize_isbn(raw)):
                return normalized
            if raw:
                logger.warning(f"Invalid ISBN from Wikidata: {raw}")
        return None

    @staticmethod
    def _search_signals(binding: dict[str, Any]) -> MatchSignals:
        author = _value(binding, "authorLabel")
        return MatchSignals(
            title=_value(binding, "bookLabel"),
            authors=(author,) if author else (),
            has_cover=bool(_value(binding, "image")),
            publication_year=extract_year(_value(binding, "pubDate")),
        )

    @staticmethod
    def _record_signals(record: dict[str, Any]) -> MatchSignals:
        return MatchSignals(
            title=record["title"],
            authors=tuple(record["authors"]),
            has_subjects=bool(record["genres"]),
            has_cover=bool(record["image"]),
            publication_year=extract_year(record["publish_date"]),
        )


def _fold(rows: list[dict[str, Any]]) -> dict[str, Any]:
    """Collapse one-row-per-combination SPARQL output into a single record."""
    first = rows[0]
    publish_date = _value(first, "publishDate")
    return {
        "qid": _qid(_value(first, "book")),
        "title": _value(first, "bookLabel"),
        "authors": dedupe_case_insensitive(
            [a for row in rows if (a := _value(row, "authorLabel"))]
        ),
        "genres": dedupe_case_insensitive(
            [g for row in rows if (g := _value(row, "genreLabel"))]
        ),
        # xsd:dateTime such as 1949-06-08T00:00:00Z
        "publish_date": publish_date[:10] if publish_date else None,
        "image": next((i for row in rows if (i := _value(row, "image"))), None),
        "open_library_id": _value(first, "openLibraryId"),
        "goodreads_id": _value(first, "goodreadsId"),
        "librarything_id": _value(first, "libraryThingId"),
    }
