"""Initial schema for bibresolve.

Revision ID: 001
Revises:
Create Date: 2026-09-14

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "enriched_editions",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("isbn", sa.String(13), nullable=False),
        sa.Column("capability", sa.String(64), nullable=False),
        sa.Column(
            "source",
            sa.String(64),
            nullable=True,
            comment="Provider that produced the payload",
        ),
        sa.Column("confidence", sa.SmallInteger, nullable=True),
        sa.Column(
            "payload",
            postgresql.JSONB,
            server_default="{}",
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.UniqueConstraint("isbn", "capability", name="uq_enriched_edition"),
        sa.CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 100)",
            name="ck_enriched_editions_valid_confidence",
        ),
    )
    op.create_index("ix_enriched_editions_isbn", "enriched_editions", ["isbn"])
    op.create_index(
        "ix_enriched_editions_payload",
        "enriched_editions",
        ["payload"],
        postgresql_using="gin",
    )


def downgrade() -> None:
    op.drop_index("ix_enriched_editions_payload", table_name="enriched_editions")
    op.drop_index("ix_enriched_editions_isbn", table_name="enriched_editions")
    op.drop_table("enriched_editions")
