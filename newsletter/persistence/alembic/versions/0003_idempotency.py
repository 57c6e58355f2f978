"""add idempotency records

Revision ID: 0003_idempotency
Revises: 0002_issue_delivery_queue
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0003_idempotency"
down_revision = "0002_issue_delivery_queue"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Response columns are nullable: a row is a bare claim until the owner saves its response.
    op.create_table(
        "idempotency",
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("idempotency_key", sa.String(), nullable=False),
        sa.Column("response_status_code", sa.Integer(), nullable=True),
        sa.Column("response_headers", postgresql.JSONB(), nullable=True),
        sa.Column("response_body", sa.LargeBinary(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("owner_id", "idempotency_key", name="pk_idempotency"),
    )
    op.create_index(
        "ix_idempotency_created_at",
        "idempotency",
        ["created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_idempotency_created_at", table_name="idempotency")
    op.drop_table("idempotency")
