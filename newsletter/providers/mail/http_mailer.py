from __future__ import annotations

import httpx
from pydantic import SecretStr

from newsletter.core.errors import SendError


class HttpMailer:
    """Postmark-compatible HTTP mail API client.

    Sends `POST {base_url}/email` with a JSON body and the server token header.
    Any transport error, timeout or non-2xx status becomes a SendError.
    """

    def __init__(
        self,
        *,
        base_url: str,
        sender: str,
        auth_token: SecretStr,
        timeout_ms: int = 10000,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._sender = sender
        self._auth_token = auth_token
        self._timeout_s = max(0.2, timeout_ms / 1000.0)
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per mailer for connection pooling.
        self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def send(self, recipient: str, subject: str, html: str, text: str) -> None:
        payload = {
            "From": self._sender,
            "To": recipient,
            "Subject": subject,
            "HtmlBody": html,
            "TextBody": text,
        }
        headers = {"X-Postmark-Server-Token": self._auth_token.get_secret_value()}
        try:
            response = await self._get_client().post(
                f"{self._base_url}/email",
                json=payload,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise SendError(f"Mail API request failed: {exc.__class__.__name__}") from exc
        if response.status_code >= 400:
            raise SendError(f"Mail API rejected message ({response.status_code})")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
