"""Tests for the Google Books provider."""

from __future__ import annotations

import pytest
import respx
from httpx import Response

from bibresolve.context import ServiceContext
from bibresolve.core.types import CoverSize, ProviderName, PublicDomainReason
from bibresolve.resolution.providers.google_books import GoogleBooksProvider

VOLUMES_URL = "https://www.googleapis.com/books/v1/volumes"


@pytest.fixture
def provider(context) -> GoogleBooksProvider:
    return GoogleBooksProvider(context)


@pytest.fixture
def volume() -> dict:
    """Google Books volume for Nineteen Eighty-Four."""
    return {
        "id": "kotPYEqx7kMC",
        "volumeInfo": {
            "title": "1984",
            "authors": ["George Orwell"],
            "publisher": "Signet Classics",
            "publishedDate": "1961-01-01",
            "pageCount": 328,
            "language": "en",
            "description": "Among the seminal texts of the 20th century.",
            "categories": ["Fiction"],
            "imageLinks": {"thumbnail": "http://books.google.com/books/content?id=kotPYEqx7kMC"},
            "industryIdentifiers": [
                {"type": "ISBN_10", "identifier": "0451524934"},
                {"type": "ISBN_13", "identifier": "9780451524935"},
            ],
        },
        "accessInfo": {"accessViewStatus": "SAMPLE"},
    }


def volumes(*items: dict) -> Response:
    return Response(200, json={"totalItems": len(items), "items": list(items)})


class TestGoogleBooksLookups:
    """Tests for lookups by ISBN."""

    @respx.mock
    async def test_fetch_metadata(self, provider: GoogleBooksProvider, volume):
        route = respx.get(VOLUMES_URL).mock(return_value=volumes(volume))

        metadata = await provider.fetch_metadata("9780451524935")

        assert metadata.title == "1984"
        assert metadata.isbn10 == "0451524934"
        assert metadata.description.startswith("Among")
        assert metadata.subjects == ["Fiction"]
        assert metadata.cover_url.startswith("https://books.google.com/")
        assert metadata.external_ids.google_books_id == "kotPYEqx7kMC"
        assert metadata.confidence == 100
        request_url = str(route.calls[0].request.url)
        assert "isbn%3A9780451524935" in request_url or "isbn:9780451524935" in request_url
        assert "key=" not in request_url

    @respx.mock
    async def test_cover_is_medium(self, provider: GoogleBooksProvider, volume):
        respx.get(VOLUMES_URL).mock(return_value=volumes(volume))

        cover = await provider.fetch_cover("9780451524935", CoverSize.LARGE)

        assert cover.size == CoverSize.MEDIUM
        assert cover.confidence == 75

    @respx.mock
    async def test_external_ids(self, provider: GoogleBooksProvider, volume):
        respx.get(VOLUMES_URL).mock(return_value=volumes(volume))

        result = await provider.fetch_external_ids("9780451524935")

        assert result.ids.google_books_id == "kotPYEqx7kMC"
        assert result.confidence == 85

    @respx.mock
    async def test_no_items(self, provider: GoogleBooksProvider):
        respx.get(VOLUMES_URL).mock(return_value=Response(200, json={"totalItems": 0}))

        assert await provider.fetch_metadata("9780451524935") is None
        assert await provider.fetch_cover("9780451524935") is None

    @respx.mock
    async def test_api_key_sent_when_configured(self, settings, store, volume):
        keyed = settings.model_copy(update={"google_books_api_key": "gb-key"})
        provider = GoogleBooksProvider(ServiceContext.from_settings(keyed, store))
        route = respx.get(VOLUMES_URL).mock(return_value=volumes(volume))

        await provider.fetch_metadata("9780451524935")

        assert "key=gb-key" in str(route.calls[0].request.url)


class TestGoogleBooksPublicDomain:
    """Tests for the accessViewStatus verdict."""

    @respx.mock
    async def test_full_public_domain(self, provider: GoogleBooksProvider, volume):
        volume["accessInfo"] = {
            "accessViewStatus": "FULL_PUBLIC_DOMAIN",
            "pdf": {"downloadLink": "https://books.google.com/download/pd.pdf"},
        }
        respx.get(VOLUMES_URL).mock(return_value=volumes(volume))

        result = await provider.check_public_domain("9780451524935")

        assert result.is_public_domain is True
        assert result.reason == PublicDomainReason.API_VERIFIED
        assert result.confidence == 95
        assert result.download_url == "https://books.google.com/download/pd.pdf"

    @respx.mock
    async def test_in_copyright(self, provider: GoogleBooksProvider, volume):
        respx.get(VOLUMES_URL).mock(return_value=volumes(volume))

        result = await provider.check_public_domain("9780451524935")

        assert result.is_public_domain is False
        assert result.download_url is None

    @respx.mock
    async def test_no_access_info(self, provider: GoogleBooksProvider, volume):
        del volume["accessInfo"]
        respx.get(VOLUMES_URL).mock(return_value=volumes(volume))

        assert await provider.check_public_domain("9780451524935") is None


class TestGoogleBooksResolveISBN:
    """Tests for title/author search."""

    @respx.mock
    async def test_resolve(self, provider: GoogleBooksProvider, volume):
        route = respx.get(VOLUMES_URL).mock(return_value=volumes(volume))

        result = await provider.resolve_isbn("1984", "George Orwell")

        assert result.isbn == "9780451524935"
        assert result.source == ProviderName.GOOGLE_BOOKS
        # base 50 + title 20 + author 20 + subjects 5 + cover 5
        assert result.confidence == 100
        assert "intitle" in str(route.calls[0].request.url)

    @respx.mock
    async def test_volume_without_isbn_skipped(self, provider: GoogleBooksProvider, volume):
        bare = {"id": "x", "volumeInfo": {"title": "1984"}}
        respx.get(VOLUMES_URL).mock(return_value=volumes(bare, volume))

        result = await provider.resolve_isbn("1984")

        assert result.isbn == "9780451524935"
