from __future__ import annotations

import logging
import sys

from newsletter.core.config import get_settings


# Context attributes passed through `extra=` that are rendered after the message.
CONTEXT_FIELDS = (
    "worker_id",
    "newsletter_issue_id",
    "subscriber_email",
    "owner_id",
    "idempotency_key",
)

_HANDLER_NAME = "newsletter.stream"


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        pairs = [
            f"{field}={getattr(record, field)}"
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        ]
        if not pairs:
            return base
        return f"{base} [{' '.join(pairs)}]"


def configure_logging(level: str | None = None) -> None:
    # Install one stream handler on the root logger; repeated calls only adjust the level.
    resolved = (level or get_settings().log_level).upper()
    root = logging.getLogger()
    root.setLevel(resolved)
    if any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        ContextFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root.addHandler(handler)
    # SQL echo is too chatty for worker loops that poll every few seconds.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
