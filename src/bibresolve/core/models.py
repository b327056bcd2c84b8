"""Domain models for provider answers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .types import CoverSize, EditionFormat, PublicDomainReason


class TitleQuery(BaseModel):
    """Title/author pair used to look up an ISBN."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1, description="Book title as given by the caller")
    author: str = Field(default="", description="Author name as given by the caller")


class CandidateResult(BaseModel):
    """A provider's answer. Confidence is attached when the provider returns it."""

    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(..., description="Provider that produced the answer")
    confidence: int = Field(default=0, ge=0, le=100, description="Trust score (0-100)")


class ExternalIds(BaseModel):
    """Identifiers of the same book in other catalogues."""

    google_books_id: str | None = Field(default=None, description="Google Books volume ID")
    open_library_id: str | None = Field(default=None, description="Open Library work key")
    archive_org_id: str | None = Field(default=None, description="Internet Archive identifier")
    wikidata_id: str | None = Field(default=None, description="Wikidata QID")
    isbndb_id: str | None = Field(default=None, description="ISBNdb book ID")
    librarything_id: str | None = Field(default=None, description="LibraryThing work ID")
    goodreads_id: str | None = Field(default=None, description="Goodreads book ID")

    def has_any(self) -> bool:
        """Check if at least one identifier is present."""
        return any(getattr(self, field) is not None for field in type(self).model_fields)

    def to_dict(self) -> dict[str, str]:
        """Return non-None identifiers as a dictionary."""
        return {k: v for k, v in self.model_dump().items() if v is not None}

    def merge(self, other: ExternalIds) -> ExternalIds:
        """Fill missing identifiers from another set; existing values win."""
        return ExternalIds(**{**other.to_dict(), **self.to_dict()})


class ISBNResolution(CandidateResult):
    """Result of resolving a title/author pair to an ISBN."""

    isbn: str | None = Field(default=None, description="Resolved ISBN-13")
    title: str | None = Field(default=None, description="Title the provider matched")
    authors: list[str] = Field(default_factory=list, description="Authors the provider matched")

    @property
    def found(self) -> bool:
        return self.isbn is not None


class BookMetadata(CandidateResult):
    """Edition-level metadata for one ISBN."""

    isbn13: str | None = Field(default=None, description="13-digit ISBN")
    isbn10: str | None = Field(default=None, description="10-digit ISBN")
    title: str = Field(default="", description="Title of the edition")
    subtitle: str | None = Field(default=None, description="Subtitle")
    authors: list[str] = Field(default_factory=list, description="Author names")
    publisher: str | None = Field(default=None, description="Publisher name")
    publish_date: str | None = Field(default=None, description="Publication date as reported")
    page_count: int | None = Field(default=None, description="Number of pages")
    language: str | None = Field(default=None, description="Language code or name")
    description: str | None = Field(default=None, description="Synopsis or description")
    subjects: list[str] = Field(default_factory=list, description="Subject headings")
    cover_url: str | None = Field(default=None, description="Cover image URL")
    binding: str | None = Field(default=None, description="Binding as reported")
    dewey_decimal: list[str] = Field(default_factory=list, description="Dewey classifications")
    related_isbns: dict[str, str] = Field(
        default_factory=dict, description="Related ISBN -> binding"
    )
    external_ids: ExternalIds = Field(default_factory=ExternalIds)

    @property
    def publication_year(self) -> int | None:
        """Four-digit year at the start of publish_date, if any."""
        if self.publish_date and self.publish_date[:4].isdigit():
            return int(self.publish_date[:4])
        return None


class SubjectsResult(CandidateResult):
    """Subject headings from one provider."""

    subjects: list[str] = Field(default_factory=list)


class ExternalIdsResult(CandidateResult):
    """Catalogue identifiers reported by one provider."""

    ids: ExternalIds = Field(default_factory=ExternalIds)


class CoverResult(CandidateResult):
    """Location of a cover image."""

    url: str = Field(..., description="Cover image URL")
    size: CoverSize = Field(default=CoverSize.LARGE, description="Nominal size of the image")


class PublicDomainResult(CandidateResult):
    """Public domain verdict for a book."""

    is_public_domain: bool
    reason: PublicDomainReason
    copyright_expiry: int | None = Field(default=None, description="Year protection lapsed")
    download_url: str | None = Field(default=None, description="Free full-text location")


class RatingsResult(CandidateResult):
    """Aggregate reader rating."""

    average_rating: float = Field(..., ge=0.0, le=5.0)
    ratings_count: int = Field(..., ge=0)


class EditionVariant(CandidateResult):
    """Another edition of the same work."""

    isbn: str
    format: EditionFormat = EditionFormat.OTHER
    format_description: str | None = None


class GeneratedBook(CandidateResult):
    """Book suggested by a generative provider; unverified until ISBN-resolved."""

    title: str
    author: str
    publisher: str | None = None
    publish_date: str | None = None
    description: str | None = None


class EnrichmentResult(BaseModel):
    """Merged metadata from every provider that answered."""

    isbn: str
    metadata: BookMetadata | None = None
    metadata_providers: list[str] = Field(default_factory=list)
    subject_providers: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict, description="Provider -> error")
    duration_ms: float = 0.0

    @property
    def found(self) -> bool:
        return self.metadata is not None
