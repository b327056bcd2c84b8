"""At-least-once queue consumer for enrichment requests."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, Self

from pydantic import BaseModel, Field, ValidationError, model_validator

from bibresolve.cache.keys import CacheKeys
from bibresolve.cache.response import ABSENT, ResponseCache
from bibresolve.core.identifiers import normalize_isbn
from bibresolve.core.types import AttemptStatus, BatchStatus, Capability
from bibresolve.resolution.chain import Orchestrator
from bibresolve.services.batch import BatchResolver

logger = logging.getLogger(__name__)

# Outcomes a redelivery cannot change
DEFINITIVE_BATCH_STATUSES = frozenset({
    BatchStatus.FOUND,
    BatchStatus.NOT_FOUND,
    BatchStatus.INVALID,
    BatchStatus.OUT_OF_SCOPE,
})


class QueueMessage(Protocol):
    """A delivered message. Exactly one of ``ack``/``retry`` is called per message."""

    @property
    def body(self) -> Any: ...

    def ack(self) -> None: ...

    def retry(self) -> None: ...


class PersistenceSink(Protocol):
    """Stores a resolved record. Returns False instead of raising on failure."""

    async def enrich_record(self, identifier: str, payload: dict[str, Any]) -> bool: ...


class EnrichmentMessage(BaseModel):
    """Queue message body: one ISBN or a list of them."""

    isbn: str | None = None
    isbns: list[str] = Field(default_factory=list)
    priority: Literal["low", "normal", "high"] = "normal"
    source_hint: str | None = None
    capability: Capability = Capability.FETCH_METADATA

    @model_validator(mode="after")
    def require_identifier(self) -> Self:
        if not self.isbn and not self.isbns:
            raise ValueError("Message carries neither isbn nor isbns")
        return self

    def identifiers(self) -> list[str]:
        return [self.isbn] if self.isbn else list(self.isbns)


@dataclass
class QueueReport:
    """Counters for one processed batch of messages."""

    enriched: int = 0
    cached: int = 0
    not_found: int = 0
    failed: int = 0
    acked: int = 0
    retried: int = 0
    provider_calls: int = 0
    errors: list[dict[str, str]] = field(default_factory=list)

    def error(self, identifier: str, message: str) -> None:
        self.errors.append({"isbn": identifier, "error": message})


class QueueConsumer:
    """
    Drains enrichment messages.

    Metadata requests from the whole batch collapse into one provider call
    through the batch resolver; other capabilities run per ISBN through the
    orchestrator. A message is acknowledged once every ISBN it carries has
    a definitive outcome (stored, not found, invalid); anything transient
    sends the whole message back through ``retry()``.
    """

    def __init__(
        self,
        batch_resolver: BatchResolver,
        orchestrator: Orchestrator,
        cache: ResponseCache,
        sink: PersistenceSink,
        not_found_ttl: int = 86400,
    ) -> None:
        self.batch_resolver = batch_resolver
        self.orchestrator = orchestrator
        self.cache = cache
        self.sink = sink
        self.not_found_ttl = not_found_ttl

    async def process(self, messages: list[QueueMessage]) -> QueueReport:
        report = QueueReport()
        parsed: list[tuple[QueueMessage, EnrichmentMessage]] = []

        for message in messages:
            try:
                body = EnrichmentMessage.model_validate(message.body)
            except ValidationError as e:
                logger.warning(f"Dropping malformed queue message: {e.error_count()} errors")
                report.failed += 1
                report.error("unknown", "Malformed message")
                self._ack(message, report)
                continue
            parsed.append((message, body))

        # (capability, isbn) -> definitive?
        done: dict[tuple[Capability, str], bool] = {}
        pending: dict[Capability, list[str]] = {}
        for _, body in parsed:
            for raw in body.identifiers():
                isbn = normalize_isbn(raw)
                if isbn is None:
                    report.failed += 1
                    report.error(raw, "Invalid ISBN format")
                    continue
                key = (body.capability, isbn)
                if key in done or isbn in pending.get(body.capability, []):
                    continue
                if await self._known_missing(body.capability, isbn):
                    report.cached += 1
                    done[key] = True
                    continue
                pending.setdefault(body.capability, []).append(isbn)

        for capability, isbns in pending.items():
            try:
                if capability == Capability.FETCH_METADATA:
                    outcomes = await self._process_metadata(isbns, report)
                else:
                    outcomes = await self._process_capability(capability, isbns, report)
            except Exception as e:
                # Messages carrying these ISBNs go back for redelivery
                logger.exception(f"{capability} stage failed for {len(isbns)} ISBNs: {e}")
                report.failed += len(isbns)
                for isbn in isbns:
                    report.error(isbn, f"{capability} stage failed")
                outcomes = {isbn: False for isbn in isbns}
            done.update({(capability, isbn): ok for isbn, ok in outcomes.items()})

        for message, body in parsed:
            isbns = [isbn for raw in body.identifiers() if (isbn := normalize_isbn(raw))]
            if all(done.get((body.capability, isbn), False) for isbn in isbns):
                self._ack(message, report)
            else:
                message.retry()
                report.retried += 1

        logger.info(
            f"Queue batch done: {len(messages)} messages, enriched={report.enriched} "
            f"cached={report.cached} not_found={report.not_found} failed={report.failed} "
            f"acked={report.acked} retried={report.retried}"
        )
        return report

    async def _known_missing(self, capability: Capability, isbn: str) -> bool:
        lookup = await self.cache.get(CacheKeys.not_found(isbn, capability))
        return lookup.hit

    async def _mark_missing(self, capability: Capability, isbn: str) -> None:
        await self.cache.put(CacheKeys.not_found(isbn, capability), ABSENT, ttl=self.not_found_ttl)

    async def _process_metadata(self, isbns: list[str], report: QueueReport) -> dict[str, bool]:
        batch = await self.batch_resolver.resolve(isbns)
        report.provider_calls += batch.provider_calls

        outcomes: dict[str, bool] = {}
        for isbn in isbns:
            entry = batch.entries[isbn]
            if entry.status == BatchStatus.FOUND and entry.metadata is not None:
                payload = {
                    "capability": Capability.FETCH_METADATA.value,
                    "source": entry.metadata.source,
                    "confidence": entry.metadata.confidence,
                    "data": entry.metadata.model_dump(mode="json"),
                }
                outcomes[isbn] = await self._persist(isbn, payload, report)
            elif entry.status == BatchStatus.NOT_FOUND:
                await self._mark_missing(Capability.FETCH_METADATA, isbn)
                report.not_found += 1
                report.error(isbn, "Not found")
                outcomes[isbn] = True
            elif entry.status in DEFINITIVE_BATCH_STATUSES:
                logger.debug(f"{isbn} not queried: {entry.status}")
                outcomes[isbn] = True
            else:
                report.failed += 1
                report.error(isbn, entry.error or entry.status.value)
                outcomes[isbn] = False
        return outcomes

    async def _process_capability(
        self, capability: Capability, isbns: list[str], report: QueueReport
    ) -> dict[str, bool]:
        chains = await asyncio.gather(
            *(self.orchestrator.resolve(capability, isbn) for isbn in isbns)
        )
        outcomes: dict[str, bool] = {}
        for isbn, outcome in zip(isbns, chains):
            report.provider_calls += len(outcome.providers_tried)
            if outcome.found:
                payload = {
                    "capability": capability.value,
                    "source": outcome.source,
                    "confidence": getattr(outcome.result, "confidence", None),
                    "data": _dump(outcome.result),
                }
                outcomes[isbn] = await self._persist(isbn, payload, report)
                continue

            transient = any(
                a.status in (AttemptStatus.ERROR, AttemptStatus.TIMEOUT) for a in outcome.attempts
            )
            if transient:
                report.failed += 1
                report.error(isbn, f"{capability} failed on every provider")
            else:
                await self._mark_missing(capability, isbn)
                report.not_found += 1
            outcomes[isbn] = not transient
        return outcomes

    async def _persist(self, isbn: str, payload: dict[str, Any], report: QueueReport) -> bool:
        if await self.sink.enrich_record(isbn, payload):
            report.enriched += 1
            return True
        # Provider response is cached, so redelivery does not re-query it
        logger.error(f"Persisting {isbn} failed, message will be retried")
        report.failed += 1
        report.error(isbn, "Storage error")
        return False

    @staticmethod
    def _ack(message: QueueMessage, report: QueueReport) -> None:
        message.ack()
        report.acked += 1


def _dump(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    if isinstance(result, list):
        return [_dump(item) for item in result]
    return result
