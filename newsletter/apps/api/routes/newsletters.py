from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.responses import Response

from newsletter.apps.api.deps import (
    get_db,
    get_sessionmaker,
    require_idempotency_key,
    require_user_id,
)
from newsletter.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from newsletter.apps.api.response import SuccessEnvelope, success_response
from newsletter.domain.values import IdempotencyKey
from newsletter.persistence.repos import issues as issues_repo
from newsletter.services.idempotency import (
    ReturnSavedResponse,
    SavedResponse,
    save_response,
    try_processing,
)
from newsletter.services.publishing import count_pending_tasks, publish_issue


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/newsletters", tags=["newsletters"], responses=DEFAULT_ERROR_RESPONSES)

PUBLISHED_MESSAGE = "The newsletter issue has been accepted - emails will go out shortly."


class PublishIssueRequest(BaseModel):
    title: str = Field(min_length=1)
    html_content: str = Field(min_length=1)
    text_content: str = Field(min_length=1)

    model_config = {"extra": "forbid"}


class PublishIssueResponse(BaseModel):
    issue_id: str
    message: str


class DeliveryStatusResponse(BaseModel):
    issue_id: str
    pending: int


@router.post(
    "",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SuccessEnvelope[PublishIssueResponse],
)
async def publish_newsletter(
    request: Request,
    payload: PublishIssueRequest,
    user_id: str = Depends(require_user_id),
    idempotency_key: IdempotencyKey = Depends(require_idempotency_key),
    sessionmaker: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
) -> Response:
    outcome = await try_processing(sessionmaker, owner_id=user_id, key=idempotency_key)
    if isinstance(outcome, ReturnSavedResponse):
        return outcome.response.to_response(replayed=True)
    async with outcome as session:
        issue_id = await publish_issue(
            session,
            title=payload.title,
            html_content=payload.html_content,
            text_content=payload.text_content,
        )
        body = success_response(
            request=request,
            data=PublishIssueResponse(issue_id=issue_id, message=PUBLISHED_MESSAGE),
        )
        saved = await save_response(
            session,
            owner_id=user_id,
            key=idempotency_key,
            response=SavedResponse.from_response(
                JSONResponse(content=body, status_code=status.HTTP_202_ACCEPTED)
            ),
        )
    logger.info(
        "published newsletter issue",
        extra={"newsletter_issue_id": issue_id, "owner_id": user_id},
    )
    # Serve the stored bytes so the first response matches every replay.
    return saved.to_response()


@router.get("/{issue_id}/deliveries", response_model=SuccessEnvelope[DeliveryStatusResponse])
async def delivery_status(
    request: Request,
    issue_id: str,
    _user_id: str = Depends(require_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    issue = await issues_repo.get_issue(db, issue_id)
    if issue is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "ISSUE_NOT_FOUND", "message": "Newsletter issue not found"},
        )
    pending = await count_pending_tasks(db, issue_id=issue_id)
    return success_response(
        request=request,
        data=DeliveryStatusResponse(issue_id=issue_id, pending=pending),
    )
