from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.domain.models import IdempotencyRecord


async def insert_placeholder(
    session: AsyncSession,
    *,
    owner_id: str,
    idempotency_key: str,
    created_at: datetime,
) -> None:
    # Flush immediately so a uniqueness conflict surfaces as IntegrityError here, not at commit.
    session.add(
        IdempotencyRecord(
            owner_id=owner_id,
            idempotency_key=idempotency_key,
            created_at=created_at,
        )
    )
    await session.flush()


async def get_record(
    session: AsyncSession, *, owner_id: str, idempotency_key: str
) -> IdempotencyRecord | None:
    result = await session.execute(
        select(IdempotencyRecord).where(
            IdempotencyRecord.owner_id == owner_id,
            IdempotencyRecord.idempotency_key == idempotency_key,
        )
    )
    return result.scalar_one_or_none()


async def store_response(
    session: AsyncSession,
    *,
    owner_id: str,
    idempotency_key: str,
    status_code: int,
    headers: list[dict[str, Any]],
    body: bytes,
) -> int:
    # Only fill placeholders so a finalized response is never overwritten.
    result = await session.execute(
        update(IdempotencyRecord)
        .where(
            IdempotencyRecord.owner_id == owner_id,
            IdempotencyRecord.idempotency_key == idempotency_key,
            IdempotencyRecord.response_status_code.is_(None),
        )
        .values(
            response_status_code=status_code,
            response_headers=headers,
            response_body=body,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def delete_created_before(session: AsyncSession, *, cutoff: datetime) -> int:
    # Skip in-flight placeholders; their claim transaction still owns the row.
    result = await session.execute(
        delete(IdempotencyRecord)
        .where(
            IdempotencyRecord.created_at < cutoff,
            IdempotencyRecord.response_status_code.is_not(None),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
