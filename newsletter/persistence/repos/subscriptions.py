from __future__ import annotations

from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.domain.models import Subscription


async def add_subscription(
    session: AsyncSession,
    *,
    email: str,
    name: str,
    status: str = "pending_confirmation",
) -> Subscription:
    # Stored as given; the delivery worker re-validates addresses before sending.
    row = Subscription(id=uuid4().hex, email=email, name=name, status=status)
    session.add(row)
    await session.flush()
    return row

