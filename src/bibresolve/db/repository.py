"""Queries over enriched editions."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from bibresolve.db.models import EnrichedEditionModel


class EditionRepository:
    """Reads and idempotent writes for ``enriched_editions``."""

    model = EnrichedEditionModel

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert(
        self,
        isbn: str,
        capability: str,
        payload: dict[str, Any],
        source: str | None = None,
        confidence: int | None = None,
    ) -> None:
        """Insert the row for (isbn, capability), or replace its payload."""
        stmt = insert(EnrichedEditionModel).values(
            isbn=isbn,
            capability=capability,
            source=source,
            confidence=confidence,
            payload=payload,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_enriched_edition",
            set_={
                "source": stmt.excluded.source,
                "confidence": stmt.excluded.confidence,
                "payload": stmt.excluded.payload,
                "updated_at": func.now(),
            },
        )
        await self._session.execute(stmt)

    async def get(self, isbn: str, capability: str) -> EnrichedEditionModel | None:
        stmt = select(EnrichedEditionModel).where(
            EnrichedEditionModel.isbn == isbn,
            EnrichedEditionModel.capability == capability,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_isbn(self, isbn: str) -> Sequence[EnrichedEditionModel]:
        stmt = (
            select(EnrichedEditionModel)
            .where(EnrichedEditionModel.isbn == isbn)
            .order_by(EnrichedEditionModel.capability)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()
