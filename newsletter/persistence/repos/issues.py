from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.domain.models import NewsletterIssue


async def insert_issue(
    session: AsyncSession,
    *,
    issue_id: str,
    title: str,
    html_content: str,
    text_content: str,
    published_at: datetime,
) -> NewsletterIssue:
    issue = NewsletterIssue(
        id=issue_id,
        title=title,
        html_content=html_content,
        text_content=text_content,
        published_at=published_at,
    )
    session.add(issue)
    # Flush so queue rows inserted next can reference the issue inside the same transaction.
    await session.flush()
    return issue


async def get_issue(session: AsyncSession, issue_id: str) -> NewsletterIssue | None:
    result = await session.execute(select(NewsletterIssue).where(NewsletterIssue.id == issue_id))
    return result.scalar_one_or_none()
