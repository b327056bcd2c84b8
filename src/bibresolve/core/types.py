"""Core enums and type definitions."""

from enum import StrEnum


class Capability(StrEnum):
    """Operations a provider may implement."""

    RESOLVE_ISBN = "resolve_isbn"
    FETCH_METADATA = "fetch_metadata"
    FETCH_COVER = "fetch_cover"
    FETCH_SUBJECTS = "fetch_subjects"
    CHECK_PUBLIC_DOMAIN = "check_public_domain"
    FETCH_RATINGS = "fetch_ratings"
    FETCH_EDITION_VARIANTS = "fetch_edition_variants"
    FETCH_EXTERNAL_IDS = "fetch_external_ids"
    GENERATE_BOOKS = "generate_books"


class ProviderClass(StrEnum):
    """Pricing class of a provider. Declaration order is registry priority."""

    FREE = "free"
    PAID = "paid"
    AI = "ai"


class ProviderName(StrEnum):
    """Known external data sources."""

    OPEN_LIBRARY = "open-library"
    GOOGLE_BOOKS = "google-books"
    ARCHIVE_ORG = "archive.org"
    WIKIDATA = "wikidata"
    ISBNDB = "isbndb"
    LIBRARYTHING = "librarything"
    GEMINI = "gemini"


class ResolutionMode(StrEnum):
    """How the orchestrator combines provider answers."""

    FIRST_MATCH = "first_match"
    BEST_OF = "best_of"
    AGGREGATE = "aggregate"


class AttemptStatus(StrEnum):
    """Outcome of a single provider invocation."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"
    ERROR = "error"
    TIMEOUT = "timeout"


class CacheStrategy(StrEnum):
    """Which response cache operations are allowed."""

    READ_WRITE = "read_write"
    READ_ONLY = "read_only"
    WRITE_ONLY = "write_only"
    DISABLED = "disabled"


class RateLimitStrategy(StrEnum):
    """How the rate limiter treats a too-early request."""

    ENFORCE = "enforce"
    LOG_ONLY = "log_only"
    DISABLED = "disabled"


class BreakerState(StrEnum):
    """Quota circuit breaker state. There is no half-open state."""

    CLOSED = "closed"
    OPEN = "open"


class CoverSize(StrEnum):
    """Cover image sizes."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    ORIGINAL = "original"


class PublicDomainReason(StrEnum):
    """How a public domain verdict was reached."""

    API_VERIFIED = "api-verified"
    PUBLICATION_DATE = "publication-date"


class EditionFormat(StrEnum):
    """Normalized binding formats for edition variants."""

    HARDCOVER = "hardcover"
    PAPERBACK = "paperback"
    MASS_MARKET = "mass-market"
    EBOOK = "ebook"
    AUDIOBOOK = "audiobook"
    LIBRARY_BINDING = "library-binding"
    OTHER = "other"


class BatchStatus(StrEnum):
    """Per-identifier outcome of a batch request."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    OUT_OF_SCOPE = "out_of_scope"
    DEFERRED = "deferred"
    FAILED = "failed"
