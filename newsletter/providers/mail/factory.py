from __future__ import annotations

from newsletter.core.config import Settings
from newsletter.core.errors import SetupError, SubscriberEmailError
from newsletter.domain.values import SubscriberEmail
from newsletter.providers.mail.base import Mailer
from newsletter.providers.mail.fake_mailer import FakeMailer
from newsletter.providers.mail.http_mailer import HttpMailer


def get_mailer(settings: Settings) -> Mailer:
    provider = (settings.mailer_provider or "http").lower()

    if provider == "fake":
        return FakeMailer()
    if provider == "http":
        # A bad sender address is a configuration error, so fail before the worker starts.
        try:
            sender = SubscriberEmail(settings.mailer_sender_email)
        except SubscriberEmailError as exc:
            raise SetupError(f"Invalid MAILER_SENDER_EMAIL: {exc}") from exc
        return HttpMailer(
            base_url=settings.mailer_base_url,
            sender=sender.value,
            auth_token=settings.mailer_auth_token,
            timeout_ms=settings.mailer_timeout_ms,
        )

    raise SetupError(f"Unsupported mailer provider: {provider}")
