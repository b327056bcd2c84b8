"""Enriched edition table."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Index, SmallInteger, String, UniqueConstraint, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from bibresolve.db.base import Base


class EnrichedEditionModel(Base):
    """
    One resolved capability result for one edition.

    The queue consumer writes a row per (ISBN, capability); a later
    redelivery of the same work overwrites the row instead of adding one,
    so at-least-once delivery leaves exactly one row behind.
    """

    __tablename__ = "enriched_editions"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
        server_default=text("gen_random_uuid()"),
    )
    isbn: Mapped[str] = mapped_column(String(13), nullable=False, index=True)
    capability: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str | None] = mapped_column(
        String(64),
        comment="Provider that produced the payload",
    )
    confidence: Mapped[int | None] = mapped_column(SmallInteger)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
    )
    # Maintained by the database; updated_at moves on every overwrite
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("isbn", "capability", name="uq_enriched_edition"),
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 100)",
            name="valid_confidence",
        ),
        Index("ix_enriched_editions_payload", "payload", postgresql_using="gin"),
    )

    def __repr__(self) -> str:
        return (
            f"<EnrichedEditionModel(isbn='{self.isbn}', capability='{self.capability}', "
            f"source={self.source})>"
        )
