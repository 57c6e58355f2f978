from __future__ import annotations

from dataclasses import dataclass

from newsletter.core.errors import SendError


@dataclass(frozen=True)
class SentMessage:
    recipient: str
    subject: str
    html: str
    text: str


class FakeMailer:
    def __init__(self, *, failing_recipients: set[str] | None = None) -> None:
        # Record sends in memory so tests and local runs need no mail transport.
        self.sent: list[SentMessage] = []
        self.failed: list[str] = []
        self._failing = set(failing_recipients or ())
        self.closed = False

    async def send(self, recipient: str, subject: str, html: str, text: str) -> None:
        if recipient in self._failing:
            self.failed.append(recipient)
            raise SendError(f"Fake transport rejected {recipient}")
        self.sent.append(SentMessage(recipient=recipient, subject=subject, html=html, text=text))

    async def aclose(self) -> None:
        self.closed = True
