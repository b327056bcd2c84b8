"""bibresolve - Multi-provider ISBN and book metadata resolution library."""

__version__ = "0.1.0"

from bibresolve.client import BibResolveClient, resolve_isbn
from bibresolve.core.models import (
    BookMetadata,
    CoverResult,
    EditionVariant,
    EnrichmentResult,
    ExternalIds,
    GeneratedBook,
    ISBNResolution,
    PublicDomainResult,
    RatingsResult,
)
from bibresolve.core.types import Capability, CoverSize, ProviderClass, ProviderName
from bibresolve.services.batch import BatchReport
from bibresolve.services.queue import EnrichmentMessage, QueueReport

__all__ = [
    # Client
    "BibResolveClient",
    "resolve_isbn",
    # Types
    "Capability",
    "CoverSize",
    "ProviderClass",
    "ProviderName",
    # Models
    "BookMetadata",
    "CoverResult",
    "EditionVariant",
    "EnrichmentResult",
    "ExternalIds",
    "GeneratedBook",
    "ISBNResolution",
    "PublicDomainResult",
    "RatingsResult",
    # Results
    "BatchReport",
    "EnrichmentMessage",
    "QueueReport",
    # Version
    "__version__",
]
