from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.core.errors import AuthError, IdempotencyKeyError
from newsletter.domain.values import IdempotencyKey
from newsletter.services.auth.authenticator import Authenticator, Credentials
from newsletter.services.idempotency import IDEMPOTENCY_HEADER


_basic_auth = HTTPBasic(auto_error=False, realm="publish")


def get_sessionmaker(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.sessionmaker


async def get_db(
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
) -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with sessionmaker() as session:
        yield session


def _auth_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": 'Basic realm="publish"'},
    )


async def require_user_id(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(_basic_auth),
) -> str:
    if credentials is None:
        raise _auth_error("Missing credentials")
    authenticator: Authenticator = request.app.state.authenticator
    try:
        return await authenticator.authenticate(
            Credentials(username=credentials.username, password=SecretStr(credentials.password))
        )
    except AuthError as exc:
        raise _auth_error(str(exc)) from exc


def require_idempotency_key(
    idempotency_key: str | None = Header(default=None, alias=IDEMPOTENCY_HEADER),
) -> IdempotencyKey:
    # Reject missing or malformed keys before any store access.
    try:
        return IdempotencyKey(idempotency_key or "")
    except IdempotencyKeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "IDEMPOTENCY_KEY_INVALID", "message": str(exc)},
        ) from exc
