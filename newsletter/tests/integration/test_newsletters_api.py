from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from newsletter.apps.api.main import create_app
from newsletter.core.config import Settings
from newsletter.domain.models import IdempotencyRecord, NewsletterIssue
from newsletter.services.idempotency import REPLAY_HEADER
from newsletter.tests.utils.seed import (
    TEST_USER_ID,
    basic_auth_headers,
    build_test_authenticator,
    seed_subscribers,
)


ISSUE_BODY = {"title": "Issue #1", "html_content": "<p>Hello</p>", "text_content": "Hello"}


def _client(sessionmaker) -> AsyncClient:
    app = create_app(
        settings=Settings(database_url="sqlite+aiosqlite://"),
        sessionmaker=sessionmaker,
        authenticator=build_test_authenticator(),
    )
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _count(sessionmaker, model) -> int:
    async with sessionmaker() as session:
        return int(await session.scalar(select(func.count()).select_from(model)))


def _publish_headers(key: str | None) -> dict[str, str]:
    headers = basic_auth_headers()
    if key is not None:
        headers["Idempotency-Key"] = key
    return headers


@pytest.mark.asyncio
async def test_health_uses_success_envelope(sessionmaker) -> None:
    async with _client(sessionmaker) as client:
        response = await client.get("/v1/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["data"] == {"status": "ok"}
    assert payload["meta"]["api_version"] == "v1"
    assert response.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_publish_accepts_and_enqueues(sessionmaker) -> None:
    await seed_subscribers(sessionmaker, confirmed=["a@example.com", "b@example.com"])
    async with _client(sessionmaker) as client:
        response = await client.post(
            "/v1/admin/newsletters", json=ISSUE_BODY, headers=_publish_headers("publish-1")
        )
        assert response.status_code == 202
        payload = response.json()
        issue_id = payload["data"]["issue_id"]
        assert "emails will go out shortly" in payload["data"]["message"]
        assert REPLAY_HEADER not in response.headers

        status_response = await client.get(
            f"/v1/admin/newsletters/{issue_id}/deliveries", headers=basic_auth_headers()
        )
    assert status_response.status_code == 200
    assert status_response.json()["data"] == {"issue_id": issue_id, "pending": 2}


@pytest.mark.asyncio
async def test_retried_publish_replays_saved_response(sessionmaker) -> None:
    await seed_subscribers(sessionmaker, confirmed=["a@example.com"])
    async with _client(sessionmaker) as client:
        first = await client.post(
            "/v1/admin/newsletters", json=ISSUE_BODY, headers=_publish_headers("retry-me")
        )
        second = await client.post(
            "/v1/admin/newsletters", json=ISSUE_BODY, headers=_publish_headers("retry-me")
        )

    assert first.status_code == second.status_code == 202
    assert first.content == second.content
    assert second.headers[REPLAY_HEADER] == "true"
    assert second.headers["content-type"] == first.headers["content-type"]
    assert await _count(sessionmaker, NewsletterIssue) == 1
    assert await _count(sessionmaker, IdempotencyRecord) == 1


@pytest.mark.asyncio
async def test_distinct_keys_publish_distinct_issues(sessionmaker) -> None:
    async with _client(sessionmaker) as client:
        first = await client.post(
            "/v1/admin/newsletters", json=ISSUE_BODY, headers=_publish_headers("key-a")
        )
        second = await client.post(
            "/v1/admin/newsletters", json=ISSUE_BODY, headers=_publish_headers("key-b")
        )
    assert first.json()["data"]["issue_id"] != second.json()["data"]["issue_id"]
    assert await _count(sessionmaker, NewsletterIssue) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("key", [None, "", "x" * 51, "not valid!"])
async def test_missing_or_invalid_key_is_rejected_before_any_write(sessionmaker, key) -> None:
    async with _client(sessionmaker) as client:
        response = await client.post(
            "/v1/admin/newsletters", json=ISSUE_BODY, headers=_publish_headers(key)
        )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "IDEMPOTENCY_KEY_INVALID"
    assert await _count(sessionmaker, IdempotencyRecord) == 0
    assert await _count(sessionmaker, NewsletterIssue) == 0


@pytest.mark.asyncio
async def test_publish_requires_basic_auth(sessionmaker) -> None:
    async with _client(sessionmaker) as client:
        missing = await client.post(
            "/v1/admin/newsletters", json=ISSUE_BODY, headers={"Idempotency-Key": "k"}
        )
        wrong = await client.post(
            "/v1/admin/newsletters",
            json=ISSUE_BODY,
            headers={"Idempotency-Key": "k", **basic_auth_headers(password="nope")},
        )
    for response in (missing, wrong):
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"].startswith("Basic")
    assert await _count(sessionmaker, IdempotencyRecord) == 0


@pytest.mark.asyncio
async def test_invalid_body_returns_validation_envelope(sessionmaker) -> None:
    async with _client(sessionmaker) as client:
        response = await client.post(
            "/v1/admin/newsletters",
            json={"title": "", "html_content": "h"},
            headers=_publish_headers("bad-body"),
        )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"
    assert await _count(sessionmaker, IdempotencyRecord) == 0


@pytest.mark.asyncio
async def test_idempotency_keys_are_scoped_to_the_authenticated_user(sessionmaker) -> None:
    async with _client(sessionmaker) as client:
        await client.post("/v1/admin/newsletters", json=ISSUE_BODY, headers=_publish_headers("mine"))
    async with sessionmaker() as session:
        owners = (await session.scalars(select(IdempotencyRecord.owner_id))).all()
    assert owners == [TEST_USER_ID]


@pytest.mark.asyncio
async def test_delivery_status_for_unknown_issue_is_404(sessionmaker) -> None:
    async with _client(sessionmaker) as client:
        response = await client.get(
            "/v1/admin/newsletters/does-not-exist/deliveries", headers=basic_auth_headers()
        )
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ISSUE_NOT_FOUND"
