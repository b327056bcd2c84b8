"""LibraryThing provider."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import ClassVar

from bibresolve.core.exceptions import ProviderResponseError
from bibresolve.core.identifiers import deduplicate_isbns, normalize_isbn
from bibresolve.core.models import EditionVariant
from bibresolve.core.types import Capability, EditionFormat, ProviderClass, ProviderName
from bibresolve.resolution.base import DAY, BaseProvider

logger = logging.getLogger(__name__)


def parse_thing_isbn(xml: str | bytes) -> list[str]:
    """
    ISBNs listed in a thingISBN response, normalized and deduplicated.

    Tags match case-insensitively and with or without a namespace. Raises
    ``ProviderResponseError`` when the body is not well-formed XML.
    """
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as e:
        raise ProviderResponseError(
            f"Malformed thingISBN response: {e}", source=ProviderName.LIBRARYTHING
        ) from e
    return deduplicate_isbns(
        element.text.strip()
        for element in root.iter()
        if isinstance(element.tag, str)
        and element.tag.rsplit("}", 1)[-1].lower() == "isbn"
        and element.text
    )


class LibraryThingProvider(BaseProvider):
    """
    LibraryThing thingISBN API.

    Returns every ISBN LibraryThing groups under the same work. The API
    says nothing about bindings, so variants are reported as ``other``.
    """

    NAME: ClassVar[str] = ProviderName.LIBRARYTHING
    PROVIDER_CLASS: ClassVar[ProviderClass] = ProviderClass.FREE
    CAPABILITIES: ClassVar[frozenset[Capability]] = frozenset({
        Capability.FETCH_EDITION_VARIANTS,
    })
    BASE_URL: ClassVar[str] = "https://www.librarything.com"
    RATE_LIMIT_INTERVAL: ClassVar[float] = 1.0
    CACHE_TTL: ClassVar[int] = 30 * DAY
    CREDENTIAL: ClassVar[str | None] = "LIBRARYTHING_API_KEY"
    PURPOSE = "Edition disambiguation and variant discovery"

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        headers["Accept"] = "application/xml, text/xml"
        return headers

    async def _related(self, isbn: str) -> list[str] | None:
        """ISBNs of the same work, cached."""

        async def load() -> list[str] | None:
            api_key = await self._credential()
            if not api_key:
                raise ProviderResponseError("LibraryThing API key not configured", source=self.NAME)
            response = await self._request("GET", f"/api/{api_key}/thingISBN/{isbn}")
            if response.status_code == 404:
                return None
            if not response.is_success:
                raise ProviderResponseError(
                    f"Unexpected status {response.status_code}",
                    source=self.NAME,
                    status_code=response.status_code,
                )
            return parse_thing_isbn(response.content) or None

        return await self._cached_fetch("thing_isbn", isbn, load)

    async def fetch_edition_variants(self, isbn: str) -> list[EditionVariant] | None:
        normalized = normalize_isbn(isbn)
        if normalized is None:
            return None
        related = await self._related(normalized) or []
        variants = [
            EditionVariant(
                isbn=related_isbn,
                format=EditionFormat.OTHER,
                format_description="Related edition from LibraryThing",
                source=self.NAME,
                confidence=70,
            )
            for related_isbn in related
            if related_isbn != normalized
        ]
        logger.debug(f"LibraryThing variants for {normalized}: {len(variants)} of {len(related)}")
        return variants or None
