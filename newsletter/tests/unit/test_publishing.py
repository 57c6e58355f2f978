from __future__ import annotations

import pytest
from sqlalchemy import select

from newsletter.domain.models import IssueDeliveryTask, NewsletterIssue
from newsletter.services.publishing import count_pending_tasks, publish_issue
from newsletter.tests.utils.seed import seed_subscribers


async def _queued_emails(sessionmaker, issue_id: str) -> set[str]:
    async with sessionmaker() as session:
        rows = await session.scalars(
            select(IssueDeliveryTask.subscriber_email).where(
                IssueDeliveryTask.newsletter_issue_id == issue_id
            )
        )
        return set(rows.all())


@pytest.mark.asyncio
async def test_publish_enqueues_one_task_per_confirmed_subscriber(sessionmaker) -> None:
    await seed_subscribers(
        sessionmaker,
        confirmed=["a@example.com", "b@example.com"],
        pending=["c@example.com"],
    )
    async with sessionmaker() as session:
        issue_id = await publish_issue(
            session, title="Issue #1", html_content="<p>Hi</p>", text_content="Hi"
        )
        await session.commit()

    assert await _queued_emails(sessionmaker, issue_id) == {"a@example.com", "b@example.com"}
    async with sessionmaker() as session:
        issue = await session.get(NewsletterIssue, issue_id)
        assert issue is not None
        assert issue.title == "Issue #1"
        assert await count_pending_tasks(session, issue_id=issue_id) == 2


@pytest.mark.asyncio
async def test_publish_with_no_confirmed_subscribers_still_records_issue(sessionmaker) -> None:
    await seed_subscribers(sessionmaker, pending=["c@example.com"])
    async with sessionmaker() as session:
        issue_id = await publish_issue(session, title="t", html_content="h", text_content="h")
        await session.commit()
    async with sessionmaker() as session:
        assert await session.get(NewsletterIssue, issue_id) is not None
        assert await count_pending_tasks(session, issue_id=issue_id) == 0


@pytest.mark.asyncio
async def test_later_confirmations_are_not_added_to_a_published_issue(sessionmaker) -> None:
    await seed_subscribers(sessionmaker, confirmed=["a@example.com"])
    async with sessionmaker() as session:
        issue_id = await publish_issue(session, title="t", html_content="h", text_content="h")
        await session.commit()
    await seed_subscribers(sessionmaker, confirmed=["late@example.com"])
    assert await _queued_emails(sessionmaker, issue_id) == {"a@example.com"}


@pytest.mark.asyncio
async def test_publish_to_explicit_recipients_deduplicates(sessionmaker) -> None:
    async with sessionmaker() as session:
        issue_id = await publish_issue(
            session,
            title="t",
            html_content="h",
            text_content="h",
            recipients=["x@example.com", "y@example.com", "x@example.com"],
        )
        await session.commit()
    assert await _queued_emails(sessionmaker, issue_id) == {"x@example.com", "y@example.com"}


@pytest.mark.asyncio
async def test_aborted_publish_leaves_neither_issue_nor_tasks(sessionmaker) -> None:
    await seed_subscribers(sessionmaker, confirmed=["a@example.com"])
    async with sessionmaker() as session:
        issue_id = await publish_issue(session, title="t", html_content="h", text_content="h")
        await session.rollback()

    async with sessionmaker() as session:
        assert await session.get(NewsletterIssue, issue_id) is None
        assert await count_pending_tasks(session, issue_id=issue_id) == 0
