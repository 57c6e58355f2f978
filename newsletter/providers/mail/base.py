from __future__ import annotations

from typing import Protocol


class Mailer(Protocol):
    async def send(self, recipient: str, subject: str, html: str, text: str) -> None:
        """Deliver one message; raise SendError when the transport fails."""
        ...

    async def aclose(self) -> None:
        """Release transport resources; called once when the worker stops."""
        ...
