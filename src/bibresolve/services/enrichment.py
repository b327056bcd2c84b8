"""Metadata enrichment: merge every provider's record for an ISBN."""

from __future__ import annotations

import asyncio
import logging
import time

from bibresolve.core.identifiers import normalize_isbn
from bibresolve.core.models import BookMetadata, EnrichmentResult, SubjectsResult
from bibresolve.core.normalization import dedupe_case_insensitive
from bibresolve.core.types import AttemptStatus, Capability
from bibresolve.resolution.chain import ChainOutcome, Orchestrator

logger = logging.getLogger(__name__)

SCALAR_FIELDS = (
    "isbn13",
    "isbn10",
    "title",
    "subtitle",
    "publisher",
    "publish_date",
    "page_count",
    "language",
    "cover_url",
    "binding",
)


def merge_metadata(records: list[BookMetadata]) -> BookMetadata | None:
    """
    Merge records given in provider priority order.

    Scalars take the first non-empty value, the description is the longest
    one, lists are unioned case-insensitively keeping the first spelling,
    and external IDs fill in from every record.
    """
    if not records:
        return None

    primary = records[0]
    merged = primary.model_copy(deep=True)
    for name in SCALAR_FIELDS:
        value = next((getattr(r, name) for r in records if getattr(r, name)), None)
        setattr(merged, name, value if value is not None else getattr(primary, name))

    descriptions = [r.description for r in records if r.description]
    merged.description = max(descriptions, key=len) if descriptions else None
    merged.authors = dedupe_case_insensitive([a for r in records for a in r.authors])
    merged.subjects = dedupe_case_insensitive([s for r in records for s in r.subjects])
    merged.dewey_decimal = dedupe_case_insensitive([d for r in records for d in r.dewey_decimal])

    related: dict[str, str] = {}
    for record in records:
        for isbn, binding in record.related_isbns.items():
            related.setdefault(isbn, binding)
    merged.related_isbns = related

    external_ids = primary.external_ids
    for record in records[1:]:
        external_ids = external_ids.merge(record.external_ids)
    merged.external_ids = external_ids

    merged.confidence = max(r.confidence for r in records)
    return merged


def _errors(*outcomes: ChainOutcome) -> dict[str, str]:
    return {
        attempt.provider: attempt.error or attempt.status.value
        for outcome in outcomes
        for attempt in outcome.attempts
        if attempt.status in (AttemptStatus.ERROR, AttemptStatus.TIMEOUT)
    }


class MetadataEnricher:
    """Runs every metadata provider and a few subject providers concurrently."""

    def __init__(self, orchestrator: Orchestrator, max_subject_providers: int = 3) -> None:
        self.orchestrator = orchestrator
        self.max_subject_providers = max_subject_providers

    async def enrich(self, isbn: str) -> EnrichmentResult:
        start = time.perf_counter()
        normalized = normalize_isbn(isbn)
        if normalized is None:
            logger.debug(f"Invalid ISBN {isbn!r}, nothing to enrich")
            return EnrichmentResult(isbn=isbn)

        subject_order = [
            p.name
            for p in self.orchestrator.registry.providers_for(Capability.FETCH_SUBJECTS)
        ][: self.max_subject_providers]

        metadata_outcome, subjects_outcome = await asyncio.gather(
            self.orchestrator.resolve(Capability.FETCH_METADATA, normalized),
            self.orchestrator.resolve(
                Capability.FETCH_SUBJECTS, normalized, provider_order=subject_order
            ),
        )

        records: list[BookMetadata] = metadata_outcome.results
        subject_results: list[SubjectsResult] = subjects_outcome.results
        merged = merge_metadata(records)
        if merged is not None and subject_results:
            merged.subjects = dedupe_case_insensitive(
                merged.subjects + [s for r in subject_results for s in r.subjects]
            )

        result = EnrichmentResult(
            isbn=normalized,
            metadata=merged,
            metadata_providers=[r.source for r in records],
            subject_providers=[r.source for r in subject_results],
            errors=_errors(metadata_outcome, subjects_outcome),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            f"Enriched {normalized}: {len(records)} metadata and "
            f"{len(subject_results)} subject providers in {result.duration_ms:.0f}ms"
        )
        return result
