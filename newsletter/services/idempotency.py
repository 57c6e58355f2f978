"""Request-level idempotency guard.

A mutating handler wraps its side effects in a claim on (owner, key):

    outcome = await try_processing(sessionmaker, owner_id=user_id, key=key)
    if isinstance(outcome, ReturnSavedResponse):
        return outcome.response.to_response()
    async with outcome as session:
        ...  # all writes go through `session`
        return (await save_response(session, owner_id=user_id, key=key, response=saved)).to_response()

The claim is an uncommitted placeholder row. The primary key on
(owner_id, idempotency_key) makes a concurrent claimer's insert wait on the
row lock until the holder commits (conflict -> replay the saved response) or
rolls back (insert succeeds -> the waiter becomes the processor).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from types import TracebackType

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.responses import Response

from newsletter.core.errors import IdempotencyError
from newsletter.domain.models import IdempotencyRecord
from newsletter.domain.values import IdempotencyKey
from newsletter.persistence.repos import idempotency as idempotency_repo


logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAY_HEADER = "Idempotency-Replayed"
# Recomputed by the transport on replay; storing them would pin stale values.
_UNSTORED_HEADERS = {"content-length", "transfer-encoding", "date", "server"}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SavedResponse:
    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""

    @classmethod
    def from_response(cls, response: Response) -> "SavedResponse":
        # Only fully-buffered responses can be captured; streaming bodies have no `.body`.
        body = getattr(response, "body", None)
        if body is None:
            raise TypeError("Cannot save a streaming response for idempotent replay")
        headers = [
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in response.raw_headers
            if name.decode("latin-1").lower() not in _UNSTORED_HEADERS
        ]
        return cls(status_code=int(response.status_code), headers=headers, body=bytes(body))

    def to_response(self, *, replayed: bool = False) -> Response:
        response = Response(content=self.body, status_code=self.status_code)
        for name, value in self.headers:
            response.headers.append(name, value)
        if replayed:
            response.headers[REPLAY_HEADER] = "true"
        return response

    def headers_json(self) -> list[dict[str, str]]:
        return [{"name": name, "value": value} for name, value in self.headers]


@dataclass
class StartProcessing:
    """Winning claim: the caller owns `session` and its open transaction.

    Leaving the context without `save_response` having committed rolls the
    transaction back, which releases the claim for the next retry.
    """

    session: AsyncSession

    async def __aenter__(self) -> AsyncSession:
        return self.session

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.release()

    async def release(self) -> None:
        try:
            if self.session.in_transaction():
                await self.session.rollback()
        finally:
            await self.session.close()


@dataclass(frozen=True)
class ReturnSavedResponse:
    response: SavedResponse


NextAction = StartProcessing | ReturnSavedResponse


def _record_to_saved(record: IdempotencyRecord | None) -> SavedResponse | None:
    if record is None or record.response_status_code is None:
        return None
    headers = [
        (str(item["name"]), str(item["value"]))
        for item in (record.response_headers or [])
    ]
    return SavedResponse(
        status_code=int(record.response_status_code),
        headers=headers,
        body=bytes(record.response_body or b""),
    )


async def get_saved_response(
    session: AsyncSession,
    *,
    owner_id: str,
    key: IdempotencyKey,
) -> SavedResponse | None:
    # Read-only shortcut; correctness comes from try_processing's claim, not from this check.
    record = await idempotency_repo.get_record(
        session, owner_id=owner_id, idempotency_key=key.value
    )
    return _record_to_saved(record)


async def try_processing(
    sessionmaker: async_sessionmaker[AsyncSession],
    *,
    owner_id: str,
    key: IdempotencyKey,
) -> NextAction:
    session = sessionmaker()
    try:
        await idempotency_repo.insert_placeholder(
            session,
            owner_id=owner_id,
            idempotency_key=key.value,
            created_at=_utc_now(),
        )
    except IntegrityError:
        # Another claim committed first; its response is final by the time the conflict is raised.
        await session.rollback()
        try:
            saved = await get_saved_response(session, owner_id=owner_id, key=key)
        finally:
            await session.close()
        if saved is None:
            raise IdempotencyError("We expected a saved response, we didn't find it")
        logger.info(
            "replaying saved response",
            extra={"owner_id": owner_id, "idempotency_key": key.value},
        )
        return ReturnSavedResponse(saved)
    except BaseException:
        # Closing discards the transaction; storage errors surface unchanged to the caller.
        await session.close()
        raise
    return StartProcessing(session)


async def save_response(
    session: AsyncSession,
    *,
    owner_id: str,
    key: IdempotencyKey,
    response: SavedResponse,
) -> SavedResponse:
    # The only commit path for a claim transaction: side effects and response land together.
    updated = await idempotency_repo.store_response(
        session,
        owner_id=owner_id,
        idempotency_key=key.value,
        status_code=response.status_code,
        headers=response.headers_json(),
        body=response.body,
    )
    if updated != 1:
        raise IdempotencyError("No in-flight idempotency claim to finalize")
    await session.commit()
    return response


async def prune_idempotency_records(session: AsyncSession, *, older_than: timedelta) -> int:
    # Drop finalized responses past the retention window.
    deleted = await idempotency_repo.delete_created_before(session, cutoff=_utc_now() - older_than)
    await session.commit()
    return deleted
