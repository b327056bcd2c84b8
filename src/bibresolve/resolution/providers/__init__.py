"""Provider adapters, one per external data source."""

from bibresolve.resolution.providers.archive_org import ArchiveOrgProvider
from bibresolve.resolution.providers.gemini import GeminiProvider
from bibresolve.resolution.providers.google_books import GoogleBooksProvider
from bibresolve.resolution.providers.isbndb import ISBNdbProvider
from bibresolve.resolution.providers.librarything import LibraryThingProvider
from bibresolve.resolution.providers.open_library import OpenLibraryProvider
from bibresolve.resolution.providers.wikidata import WikidataProvider

# Registration order; the registry sorts by provider class on top of it
DEFAULT_PROVIDERS = (
    OpenLibraryProvider,
    GoogleBooksProvider,
    ArchiveOrgProvider,
    WikidataProvider,
    LibraryThingProvider,
    ISBNdbProvider,
    GeminiProvider,
)

__all__ = [
    "ArchiveOrgProvider",
    "DEFAULT_PROVIDERS",
    "GeminiProvider",
    "GoogleBooksProvider",
    "ISBNdbProvider",
    "LibraryThingProvider",
    "OpenLibraryProvider",
    "WikidataProvider",
]
