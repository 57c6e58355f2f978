from __future__ import annotations

from typing import Iterable

from sqlalchemy import delete, func, insert, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.domain.models import IssueDeliveryTask, Subscription


CONFIRMED_STATUS = "confirmed"


async def enqueue_confirmed_subscribers(session: AsyncSession, *, issue_id: str) -> int:
    # INSERT ... SELECT reads the confirmed set inside the caller's transaction (snapshot, not live).
    confirmed = select(literal(issue_id), Subscription.email).where(
        Subscription.status == CONFIRMED_STATUS
    )
    result = await session.execute(
        insert(IssueDeliveryTask).from_select(
            ["newsletter_issue_id", "subscriber_email"],
            confirmed,
        )
    )
    return result.rowcount or 0


async def enqueue_recipients(
    session: AsyncSession, *, issue_id: str, recipients: Iterable[str]
) -> int:
    # Collapse duplicates so the composite primary key cannot abort the fan-out.
    unique = list(dict.fromkeys(recipients))
    if not unique:
        return 0
    await session.execute(
        insert(IssueDeliveryTask),
        [{"newsletter_issue_id": issue_id, "subscriber_email": email} for email in unique],
    )
    return len(unique)


async def lock_next_task(session: AsyncSession) -> tuple[str, str] | None:
    # No ORDER BY: any pending row will do, and rows locked by other workers are skipped.
    result = await session.execute(
        select(IssueDeliveryTask.newsletter_issue_id, IssueDeliveryTask.subscriber_email)
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    row = result.first()
    if row is None:
        return None
    return str(row[0]), str(row[1])


async def delete_task(session: AsyncSession, *, issue_id: str, subscriber_email: str) -> int:
    result = await session.execute(
        delete(IssueDeliveryTask).where(
            IssueDeliveryTask.newsletter_issue_id == issue_id,
            IssueDeliveryTask.subscriber_email == subscriber_email,
        )
    )
    return result.rowcount or 0


async def count_pending(session: AsyncSession, *, issue_id: str | None = None) -> int:
    stmt = select(func.count()).select_from(IssueDeliveryTask)
    if issue_id is not None:
        stmt = stmt.where(IssueDeliveryTask.newsletter_issue_id == issue_id)
    return int(await session.scalar(stmt) or 0)
