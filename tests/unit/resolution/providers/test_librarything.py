"""Tests for the LibraryThing provider."""

from __future__ import annotations

import pytest
import respx
from httpx import Response

from bibresolve.context import ServiceContext
from bibresolve.core.exceptions import ProviderResponseError
from bibresolve.core.types import EditionFormat
from bibresolve.resolution.providers.librarything import LibraryThingProvider, parse_thing_isbn
from bibresolve.secrets import StaticSecretSource

THING_URL = "https://www.librarything.com/api/test-lt-key/thingISBN/9780451524935"

THING_XML = """<?xml version="1.0" encoding="utf-8"?>
<idlist>
  <isbn>0451524934</isbn>
  <isbn>0452284236</isbn>
  <isbn>9780547249643</isbn>
  <isbn>garbage</isbn>
</idlist>"""


@pytest.fixture
def provider(context) -> LibraryThingProvider:
    return LibraryThingProvider(context)


class TestLibraryThing:
    """Tests for thingISBN lookups."""

    @respx.mock
    async def test_variants(self, provider: LibraryThingProvider):
        respx.get(THING_URL).mock(return_value=Response(200, text=THING_XML))

        variants = await provider.fetch_edition_variants("9780451524935")

        assert [v.isbn for v in variants] == ["9780452284234", "9780547249643"]
        assert all(v.format == EditionFormat.OTHER for v in variants)
        assert all(v.confidence == 70 for v in variants)

    @respx.mock
    async def test_cached(self, provider: LibraryThingProvider):
        route = respx.get(THING_URL).mock(return_value=Response(200, text=THING_XML))

        await provider.fetch_edition_variants("9780451524935")
        await provider.fetch_edition_variants("0451524934")

        assert route.call_count == 1

    @respx.mock
    async def test_only_self(self, provider: LibraryThingProvider):
        respx.get(THING_URL).mock(
            return_value=Response(200, text="<idlist><isbn>0451524934</isbn></idlist>")
        )

        assert await provider.fetch_edition_variants("9780451524935") is None

    @respx.mock
    async def test_not_found(self, provider: LibraryThingProvider):
        respx.get(THING_URL).mock(return_value=Response(404))

        assert await provider.fetch_edition_variants("9780451524935") is None

    @respx.mock
    async def test_malformed_body_raises_and_is_not_cached(self, provider: LibraryThingProvider):
        route = respx.get(THING_URL).mock(return_value=Response(200, text="<idlist><isbn>"))

        with pytest.raises(ProviderResponseError):
            await provider.fetch_edition_variants("9780451524935")
        with pytest.raises(ProviderResponseError):
            await provider.fetch_edition_variants("9780451524935")

        assert route.call_count == 2

    async def test_requires_key(self, settings, store):
        context = ServiceContext.from_settings(settings, store, StaticSecretSource({}))
        assert await LibraryThingProvider(context).is_available() is False


def test_parse_thing_isbn():
    assert parse_thing_isbn("<idlist><ISBN>155860832X</ISBN></idlist>") == ["9781558608322"]
    assert parse_thing_isbn("<idlist></idlist>") == []


def test_parse_thing_isbn_namespaced_and_attributed():
    xml = (
        '<idlist xmlns="http://www.librarything.com/">'
        '<isbn type="isbn10"> 0451524934 </isbn></idlist>'
    )
    assert parse_thing_isbn(xml) == ["9780451524935"]


def test_parse_thing_isbn_malformed():
    with pytest.raises(ProviderResponseError):
        parse_thing_isbn("<idlist><isbn>0451524934</idlist>")
