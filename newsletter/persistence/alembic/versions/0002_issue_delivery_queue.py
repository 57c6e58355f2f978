"""add newsletter issues and delivery queue

Revision ID: 0002_issue_delivery_queue
Revises: 0001_subscriptions
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0002_issue_delivery_queue"
down_revision = "0001_subscriptions"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "newsletter_issue",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("html_content", sa.Text(), nullable=False),
        sa.Column("text_content", sa.Text(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
    )
    # One row per pending (issue, recipient); workers lock rows with SKIP LOCKED.
    op.create_table(
        "issue_delivery_queue",
        sa.Column(
            "newsletter_issue_id",
            sa.String(),
            sa.ForeignKey("newsletter_issue.id"),
            nullable=False,
        ),
        sa.Column("subscriber_email", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint(
            "newsletter_issue_id",
            "subscriber_email",
            name="pk_issue_delivery_queue",
        ),
    )


def downgrade() -> None:
    op.drop_table("issue_delivery_queue")
    op.drop_table("newsletter_issue")
