from __future__ import annotations

import asyncio
from enum import Enum
import logging
import os
import socket
from typing import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.core.config import Settings
from newsletter.core.errors import IssueNotFoundError, SendError, SetupError, SubscriberEmailError
from newsletter.domain.values import SubscriberEmail
from newsletter.persistence.db import build_engine, build_sessionmaker, check_connection
from newsletter.persistence.repos import delivery_queue as queue_repo
from newsletter.persistence.repos import issues as issues_repo
from newsletter.providers.mail.base import Mailer
from newsletter.providers.mail.factory import get_mailer
from newsletter.services.delivery.policy import (
    DeliveryContext,
    DeliveryFailurePolicy,
    DiscardFailedDeliveries,
    TaskDisposition,
)


logger = logging.getLogger(__name__)

EMPTY_QUEUE_BACKOFF_S = 10.0
ERROR_BACKOFF_S = 1.0


class ExecutionOutcome(str, Enum):
    EMPTY_QUEUE = "empty_queue"
    TASK_COMPLETED = "task_completed"


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


async def dequeue_task(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> tuple[AsyncSession, str, str] | None:
    # The returned session holds the row lock until the caller commits or closes it.
    session = sessionmaker()
    try:
        task = await queue_repo.lock_next_task(session)
    except BaseException:
        await session.close()
        raise
    if task is None:
        await session.close()
        return None
    issue_id, subscriber_email = task
    return session, issue_id, subscriber_email


async def delete_task(session: AsyncSession, *, issue_id: str, subscriber_email: str) -> None:
    # Delete and commit in the lock-holding transaction so removal and unlock are atomic.
    await queue_repo.delete_task(session, issue_id=issue_id, subscriber_email=subscriber_email)
    await session.commit()


async def _execute(
    session: AsyncSession,
    mailer: Mailer,
    policy: DeliveryFailurePolicy,
    context: DeliveryContext,
) -> TaskDisposition:
    try:
        recipient = SubscriberEmail(context.subscriber_email)
    except SubscriberEmailError as exc:
        logger.error(
            "Skipping a confirmed subscriber. Their stored contact details are invalid: %s",
            exc,
            extra=context.log_extra(),
        )
        return await policy.on_invalid_recipient(context, exc)

    issue = await issues_repo.get_issue(session, context.newsletter_issue_id)
    if issue is None:
        raise IssueNotFoundError(f"newsletter issue {context.newsletter_issue_id} not found")

    try:
        await mailer.send(recipient.value, issue.title, issue.html_content, issue.text_content)
    except SendError as exc:
        logger.error(
            "Failed to deliver issue to a confirmed subscriber. Skipping: %s",
            exc,
            extra=context.log_extra(),
        )
        return await policy.on_send_failure(context, exc)
    logger.info("Delivered issue to subscriber", extra=context.log_extra())
    return TaskDisposition.REMOVE


async def try_execute_task(
    sessionmaker: async_sessionmaker[AsyncSession],
    mailer: Mailer,
    *,
    policy: DeliveryFailurePolicy | None = None,
    worker_id: str | None = None,
) -> ExecutionOutcome:
    """Dequeue one task, attempt it and settle its row.

    Send failures and malformed addresses are handled by `policy`; any other
    exception rolls the transaction back, leaving the row for a later poll.
    """
    task = await dequeue_task(sessionmaker)
    if task is None:
        return ExecutionOutcome.EMPTY_QUEUE
    session, issue_id, subscriber_email = task
    context = DeliveryContext(
        worker_id=worker_id or default_worker_id(),
        newsletter_issue_id=issue_id,
        subscriber_email=subscriber_email,
    )
    try:
        disposition = await _execute(session, mailer, policy or DiscardFailedDeliveries(), context)
        if disposition is TaskDisposition.REMOVE:
            await delete_task(session, issue_id=issue_id, subscriber_email=subscriber_email)
        else:
            await session.rollback()
    finally:
        await session.close()
    return ExecutionOutcome.TASK_COMPLETED


async def worker_loop(
    sessionmaker: async_sessionmaker[AsyncSession],
    mailer: Mailer,
    *,
    empty_queue_backoff_s: float = EMPTY_QUEUE_BACKOFF_S,
    error_backoff_s: float = ERROR_BACKOFF_S,
    policy: DeliveryFailurePolicy | None = None,
    worker_id: str | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    # Drain bursts back-to-back, back off when idle, and never exit on a per-poll failure.
    resolved_policy = policy or DiscardFailedDeliveries()
    resolved_worker_id = worker_id or default_worker_id()
    while True:
        try:
            outcome = await try_execute_task(
                sessionmaker,
                mailer,
                policy=resolved_policy,
                worker_id=resolved_worker_id,
            )
        except Exception:  # noqa: BLE001 - keep loop alive while surfacing errors in logs.
            logger.exception("delivery poll failed", extra={"worker_id": resolved_worker_id})
            await sleep(error_backoff_s)
            continue
        if outcome is ExecutionOutcome.EMPTY_QUEUE:
            await sleep(empty_queue_backoff_s)


async def run_worker_till_stopped(settings: Settings) -> None:
    """Run the delivery loop until cancelled; only setup failures are fatal."""
    engine = build_engine(settings)
    try:
        await check_connection(engine)
    except (SQLAlchemyError, OSError) as exc:
        await engine.dispose()
        raise SetupError("Cannot reach the database at startup") from exc
    mailer: Mailer | None = None
    try:
        mailer = get_mailer(settings)
        logger.info("delivery worker started", extra={"worker_id": default_worker_id()})
        await worker_loop(
            build_sessionmaker(engine),
            mailer,
            empty_queue_backoff_s=settings.worker_empty_queue_backoff_s,
            error_backoff_s=settings.worker_error_backoff_s,
        )
    finally:
        if mailer is not None:
            await mailer.aclose()
        await engine.dispose()
