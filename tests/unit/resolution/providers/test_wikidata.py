"""Tests for the Wikidata SPARQL provider."""

from __future__ import annotations

import pytest
import respx
from httpx import Response

from bibresolve.core.types import ProviderName
from bibresolve.resolution.providers.wikidata import WikidataProvider, sanitize_sparql

SPARQL_URL = "https://query.wikidata.org/sparql"
ENTITY = "http://www.wikidata.org/entity/"


@pytest.fixture
def provider(context) -> WikidataProvider:
    return WikidataProvider(context)


def literal(value: str) -> dict:
    return {"type": "literal", "value": value}


def bindings(*rows: dict) -> Response:
    return Response(200, json={"head": {"vars": []}, "results": {"bindings": list(rows)}})


@pytest.fixture
def book_rows() -> list[dict]:
    """Two rows for one book: one per genre."""
    base = {
        "book": {"type": "uri", "value": f"{ENTITY}Q208460"},
        "bookLabel": literal("Nineteen Eighty-Four"),
        "authorLabel": literal("George Orwell"),
        "publishDate": literal("1949-06-08T00:00:00Z"),
        "openLibraryId": literal("OL1168083W"),
        "goodreadsId": literal("153313"),
    }
    return [
        {**base, "genreLabel": literal("dystopian novel")},
        {**base, "genreLabel": literal("political fiction")},
    ]


class TestWikidataLookups:
    """Tests for the ISBN-keyed lookups."""

    @respx.mock
    async def test_rows_folded(self, provider, book_rows):
        respx.get(SPARQL_URL).mock(return_value=bindings(*book_rows))

        metadata = await provider.fetch_metadata("9780451524935")

        assert metadata.title == "Nineteen Eighty-Four"
        assert metadata.authors == ["George Orwell"]
        assert metadata.subjects == ["dystopian novel", "political fiction"]
        assert metadata.publish_date == "1949-06-08"
        assert metadata.external_ids.wikidata_id == "Q208460"

    @respx.mock
    async def test_external_ids(self, provider, book_rows):
        respx.get(SPARQL_URL).mock(return_value=bindings(*book_rows))

        result = await provider.fetch_external_ids("9780451524935")

        assert result.ids.to_dict() == {
            "wikidata_id": "Q208460",
            "open_library_id": "OL1168083W",
            "goodreads_id": "153313",
        }
        assert result.confidence == 80

    @respx.mock
    async def test_metadata_and_ids_share_one_query(self, provider, book_rows):
        route = respx.get(SPARQL_URL).mock(return_value=bindings(*book_rows))

        await provider.fetch_metadata("9780451524935")
        await provider.fetch_external_ids("9780451524935")
        assert await provider.fetch_cover("9780451524935") is None

        assert route.call_count == 1

    @respx.mock
    async def test_sparql_headers(self, provider, book_rows):
        route = respx.get(SPARQL_URL).mock(return_value=bindings(*book_rows))

        await provider.fetch_metadata("9780451524935")

        request = route.calls[0].request
        assert request.headers["Accept"] == "application/sparql-results+json"
        assert "9780451524935" in str(request.url)

    @respx.mock
    async def test_no_bindings(self, provider):
        respx.get(SPARQL_URL).mock(return_value=bindings())

        assert await provider.fetch_metadata("9780451524935") is None


class TestWikidataResolveISBN:
    """Tests for the two-pass title search."""

    @respx.mock
    async def test_exact_pass(self, provider):
        respx.get(SPARQL_URL).mock(return_value=bindings({
            "book": {"type": "uri", "value": f"{ENTITY}Q208460"},
            "bookLabel": literal("Nineteen Eighty-Four"),
            "authorLabel": literal("George Orwell"),
            "pubDate": literal("1949-06-08T00:00:00Z"),
            "isbn13s": literal("978-0-451-52493-5"),
            "isbn10s": literal(""),
        }))

        result = await provider.resolve_isbn("Nineteen Eighty-Four", "George Orwell")

        assert result.isbn == "9780451524935"
        assert result.source == ProviderName.WIKIDATA
        # base 40 + title 20 + author 20 + date 5
        assert result.confidence == 85

    @respx.mock
    async def test_fuzzy_second_pass(self, provider):
        """Second pass on the normalized title earns a smaller title bonus."""
        route = respx.get(SPARQL_URL).mock(side_effect=[
            bindings(),
            bindings({
                "bookLabel": literal("The Hobbit"),
                "authorLabel": literal("J. R. R. Tolkien"),
                "isbn13s": literal("9780547249643"),
            }),
        ])

        result = await provider.resolve_isbn("The Hobbit", "Tolkien")

        assert route.call_count == 2
        assert result.isbn == "9780547249643"
        assert result.confidence == 70

    @respx.mock
    async def test_invalid_isbns_skipped(self, provider):
        respx.get(SPARQL_URL).mock(return_value=bindings({
            "bookLabel": literal("dune"),
            "authorLabel": literal("Frank Herbert"),
            "isbn13s": literal("9780000000000"),
        }))

        assert await provider.resolve_isbn("dune", "Frank Herbert") is None


def test_sanitize_sparql():
    assert sanitize_sparql('Say "hi"\n') == 'Say \\"hi\\" '
    assert sanitize_sparql("back\\slash") == "back\\\\slash"
