"""Capability services built on the orchestrator."""

from bibresolve.services.batch import BatchEntry, BatchReport, BatchResolver
from bibresolve.services.covers import CoverFetcher
from bibresolve.services.editions import EditionVariantFetcher
from bibresolve.services.enrichment import MetadataEnricher, merge_metadata
from bibresolve.services.external_ids import ExternalIdFetcher
from bibresolve.services.generation import BookGenerator
from bibresolve.services.isbn import ISBNResolver
from bibresolve.services.public_domain import PublicDomainChecker
from bibresolve.services.queue import (
    EnrichmentMessage,
    PersistenceSink,
    QueueConsumer,
    QueueMessage,
    QueueReport,
)
from bibresolve.services.ratings import RatingsFetcher

__all__ = [
    "BatchEntry",
    "BatchReport",
    "BatchResolver",
    "BookGenerator",
    "CoverFetcher",
    "EditionVariantFetcher",
    "EnrichmentMessage",
    "ExternalIdFetcher",
    "ISBNResolver",
    "MetadataEnricher",
    "PersistenceSink",
    "PublicDomainChecker",
    "QueueConsumer",
    "QueueMessage",
    "QueueReport",
    "RatingsFetcher",
    "merge_metadata",
]
