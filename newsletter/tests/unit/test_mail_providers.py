from __future__ import annotations

import json

import httpx
import pytest
from pydantic import SecretStr

from newsletter.core.config import Settings
from newsletter.core.errors import SendError, SetupError
from newsletter.providers.mail.factory import get_mailer
from newsletter.providers.mail.fake_mailer import FakeMailer
from newsletter.providers.mail.http_mailer import HttpMailer


def _mailer(handler) -> HttpMailer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpMailer(
        base_url="http://mail.example.com/",
        sender="newsletter@example.com",
        auth_token=SecretStr("server-token"),
        client=client,
    )


@pytest.mark.asyncio
async def test_http_mailer_posts_expected_payload() -> None:
    captured: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"ErrorCode": 0})

    mailer = _mailer(_handler)
    await mailer.send("reader@example.com", "Subject", "<p>html</p>", "text")
    await mailer.aclose()

    assert len(captured) == 1
    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == "http://mail.example.com/email"
    assert request.headers["X-Postmark-Server-Token"] == "server-token"
    assert json.loads(request.content) == {
        "From": "newsletter@example.com",
        "To": "reader@example.com",
        "Subject": "Subject",
        "HtmlBody": "<p>html</p>",
        "TextBody": "text",
    }


@pytest.mark.asyncio
async def test_http_mailer_maps_error_status_to_send_error() -> None:
    mailer = _mailer(lambda request: httpx.Response(500, json={"Message": "down"}))
    with pytest.raises(SendError, match="500"):
        await mailer.send("reader@example.com", "s", "h", "t")
    await mailer.aclose()


@pytest.mark.asyncio
async def test_http_mailer_maps_timeout_to_send_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    mailer = _mailer(_handler)
    with pytest.raises(SendError, match="ReadTimeout"):
        await mailer.send("reader@example.com", "s", "h", "t")
    await mailer.aclose()


@pytest.mark.asyncio
async def test_fake_mailer_records_and_fails_selected_recipients() -> None:
    mailer = FakeMailer(failing_recipients={"bad@example.com"})
    await mailer.send("good@example.com", "s", "h", "t")
    with pytest.raises(SendError):
        await mailer.send("bad@example.com", "s", "h", "t")
    assert [message.recipient for message in mailer.sent] == ["good@example.com"]
    assert mailer.failed == ["bad@example.com"]


def test_factory_selects_provider() -> None:
    assert isinstance(get_mailer(Settings(mailer_provider="fake")), FakeMailer)
    assert isinstance(get_mailer(Settings(mailer_provider="HTTP")), HttpMailer)


def test_factory_rejects_invalid_sender() -> None:
    with pytest.raises(SetupError, match="MAILER_SENDER_EMAIL"):
        get_mailer(Settings(mailer_provider="http", mailer_sender_email="not-an-email"))


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(SetupError):
        get_mailer(Settings(mailer_provider="carrier-pigeon"))
