from __future__ import annotations

from dataclasses import dataclass
import re

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from newsletter.core.errors import IdempotencyKeyError, SubscriberEmailError


IDEMPOTENCY_KEY_MAX_LENGTH = 50
_IDEMPOTENCY_KEY_PATTERN = re.compile(r"[A-Za-z0-9_-]+")
_EMAIL_ADAPTER = TypeAdapter(EmailStr)


@dataclass(frozen=True)
class IdempotencyKey:
    """Client-supplied key identifying one logical retryable operation.

    Keys are validated as given; nothing is stripped or truncated so two
    retries of the same request always map onto the same stored record.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            raise IdempotencyKeyError("The idempotency key cannot be empty")
        if len(self.value) > IDEMPOTENCY_KEY_MAX_LENGTH:
            raise IdempotencyKeyError(
                f"The idempotency key must be shorter than {IDEMPOTENCY_KEY_MAX_LENGTH + 1} characters"
            )
        if _IDEMPOTENCY_KEY_PATTERN.fullmatch(self.value) is None:
            raise IdempotencyKeyError(
                "The idempotency key may only contain letters, digits, '-' and '_'"
            )

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SubscriberEmail:
    value: str

    def __post_init__(self) -> None:
        try:
            _EMAIL_ADAPTER.validate_python(self.value)
        except PydanticValidationError as exc:
            raise SubscriberEmailError(f"{self.value!r} is not a valid subscriber email") from exc

    def __str__(self) -> str:
        return self.value
