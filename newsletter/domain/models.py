from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    PrimaryKeyConstraint,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on Postgres, plain JSON elsewhere so local SQLite databases work.
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, unique=True)
    name: Mapped[str] = mapped_column(String)
    # pending_confirmation | confirmed; only confirmed rows are snapshotted on publish.
    status: Mapped[str] = mapped_column(String, index=True)
    subscribed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class NewsletterIssue(Base):
    __tablename__ = "newsletter_issue"

    # Issues are immutable once published; queue rows reference them by id.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    title: Mapped[str] = mapped_column(Text)
    html_content: Mapped[str] = mapped_column(Text)
    text_content: Mapped[str] = mapped_column(Text)
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class IssueDeliveryTask(Base):
    __tablename__ = "issue_delivery_queue"
    __table_args__ = (
        PrimaryKeyConstraint(
            "newsletter_issue_id",
            "subscriber_email",
            name="pk_issue_delivery_queue",
        ),
    )

    # One pending (issue, recipient) obligation; the row is deleted after an attempt.
    newsletter_issue_id: Mapped[str] = mapped_column(String, ForeignKey("newsletter_issue.id"))
    subscriber_email: Mapped[str] = mapped_column(String)


class IdempotencyRecord(Base):
    __tablename__ = "idempotency"
    __table_args__ = (
        # The primary key is the race-free uniqueness guarantee for concurrent claims.
        PrimaryKeyConstraint("owner_id", "idempotency_key", name="pk_idempotency"),
        Index("ix_idempotency_created_at", "created_at"),
    )

    owner_id: Mapped[str] = mapped_column(String)
    idempotency_key: Mapped[str] = mapped_column(String)
    # Response columns stay NULL while the claim is in flight.
    response_status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_headers: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONType, nullable=True)
    response_body: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
