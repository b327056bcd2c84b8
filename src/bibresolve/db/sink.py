"""Queue persistence sink backed by PostgreSQL."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from bibresolve.core.exceptions import PersistenceError
from bibresolve.core.types import Capability
from bibresolve.db.repository import EditionRepository
from bibresolve.db.session import DatabaseManager

logger = logging.getLogger(__name__)


class DatabasePersistenceSink:
    """
    Writes queue results to ``enriched_editions``.

    ``enrich_record`` reports failure by returning False so the consumer can
    hand the message back for redelivery; ``store`` raises instead.
    """

    def __init__(self, database: DatabaseManager) -> None:
        self.database = database

    async def store(self, identifier: str, payload: dict[str, Any]) -> None:
        """
        Upsert one record.

        Raises:
            PersistenceError: the database rejected the write or is unreachable
        """
        capability = payload.get("capability", Capability.FETCH_METADATA.value)
        try:
            async with self.database.session() as session:
                await EditionRepository(session).upsert(
                    identifier,
                    capability,
                    payload=payload.get("data", payload),
                    source=payload.get("source"),
                    confidence=payload.get("confidence"),
                )
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(
                f"Failed to persist {capability} for {identifier}: {e}",
                details={"isbn": identifier, "capability": capability},
            ) from e
        logger.debug(f"Persisted {capability} for {identifier}")

    async def enrich_record(self, identifier: str, payload: dict[str, Any]) -> bool:
        try:
            await self.store(identifier, payload)
        except PersistenceError as e:
            logger.error(e.message)
            return False
        return True
