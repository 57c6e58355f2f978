from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import uuid4

from fastapi import FastAPI, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.apps.api.errors import register_exception_handlers
from newsletter.apps.api.response import API_VERSION
from newsletter.apps.api.routes.health import router as health_router
from newsletter.apps.api.routes.newsletters import router as newsletters_router
from newsletter.core.config import Settings, get_settings
from newsletter.core.logging import configure_logging
from newsletter.persistence.db import build_engine, build_sessionmaker
from newsletter.services.auth.authenticator import Authenticator, StoredCredentialAuthenticator


def create_app(
    *,
    settings: Settings | None = None,
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
    authenticator: Authenticator | None = None,
) -> FastAPI:
    resolved_settings = settings or get_settings()
    configure_logging(resolved_settings.log_level)
    owned_engine = None
    if sessionmaker is None:
        owned_engine = build_engine(resolved_settings)
        sessionmaker = build_sessionmaker(owned_engine)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        # Dispose only engines this factory created; injected sessionmakers belong to the caller.
        if owned_engine is not None:
            await owned_engine.dispose()

    app = FastAPI(title=resolved_settings.app_name, lifespan=lifespan)
    app.state.settings = resolved_settings
    app.state.sessionmaker = sessionmaker
    app.state.authenticator = authenticator or StoredCredentialAuthenticator.from_settings(resolved_settings)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    register_exception_handlers(app)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(newsletters_router, prefix=f"/{API_VERSION}")
    return app
