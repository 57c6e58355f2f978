from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Iterable
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.persistence.repos import delivery_queue as queue_repo
from newsletter.persistence.repos import issues as issues_repo


logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def publish_issue(
    session: AsyncSession,
    *,
    title: str,
    html_content: str,
    text_content: str,
    recipients: Iterable[str] | None = None,
) -> str:
    """Record an issue and fan it out into one delivery task per recipient.

    Runs inside the caller's transaction and never commits: the issue and its
    tasks become visible to workers together, or not at all. With no explicit
    `recipients` the confirmed subscriptions are snapshotted in the same
    transaction.
    """
    issue_id = uuid4().hex
    await issues_repo.insert_issue(
        session,
        issue_id=issue_id,
        title=title,
        html_content=html_content,
        text_content=text_content,
        published_at=_utc_now(),
    )
    if recipients is None:
        enqueued = await queue_repo.enqueue_confirmed_subscribers(session, issue_id=issue_id)
    else:
        enqueued = await queue_repo.enqueue_recipients(session, issue_id=issue_id, recipients=recipients)
    logger.info(
        "enqueued delivery tasks count=%s",
        enqueued,
        extra={"newsletter_issue_id": issue_id},
    )
    return issue_id


async def count_pending_tasks(session: AsyncSession, *, issue_id: str) -> int:
    return await queue_repo.count_pending(session, issue_id=issue_id)
