"""Core domain types, models, identifiers and exceptions."""

from bibresolve.core.exceptions import (
    BibResolveError,
    PersistenceError,
    ProviderError,
    ProviderResponseError,
    ProviderUnavailableError,
    QuotaExceededError,
    RateLimitError,
    RegistrationError,
    StoreError,
)
from bibresolve.core.identifiers import ISBN, deduplicate_isbns, in_english_scope, normalize_isbn
from bibresolve.core.models import (
    BookMetadata,
    CandidateResult,
    CoverResult,
    EditionVariant,
    EnrichmentResult,
    ExternalIds,
    ExternalIdsResult,
    GeneratedBook,
    ISBNResolution,
    PublicDomainResult,
    RatingsResult,
    SubjectsResult,
    TitleQuery,
)
from bibresolve.core.types import (
    AttemptStatus,
    BatchStatus,
    BreakerState,
    CacheStrategy,
    Capability,
    CoverSize,
    EditionFormat,
    ProviderClass,
    ProviderName,
    PublicDomainReason,
    RateLimitStrategy,
    ResolutionMode,
)

__all__ = [
    # Exceptions
    "BibResolveError",
    "PersistenceError",
    "ProviderError",
    "ProviderResponseError",
    "ProviderUnavailableError",
    "QuotaExceededError",
    "RateLimitError",
    "RegistrationError",
    "StoreError",
    # Identifiers
    "ISBN",
    "deduplicate_isbns",
    "in_english_scope",
    "normalize_isbn",
    # Models
    "BookMetadata",
    "CandidateResult",
    "CoverResult",
    "EditionVariant",
    "EnrichmentResult",
    "ExternalIds",
    "ExternalIdsResult",
    "GeneratedBook",
    "ISBNResolution",
    "PublicDomainResult",
    "RatingsResult",
    "SubjectsResult",
    "TitleQuery",
    # Types
    "AttemptStatus",
    "BatchStatus",
    "BreakerState",
    "CacheStrategy",
    "Capability",
    "CoverSize",
    "EditionFormat",
    "ProviderClass",
    "ProviderName",
    "PublicDomainReason",
    "RateLimitStrategy",
    "ResolutionMode",
]
