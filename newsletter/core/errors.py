from __future__ import annotations


class NewsletterError(Exception):
    """Base error for the newsletter service."""


class ValidationError(NewsletterError):
    """Input failed validation; never retried."""


class IdempotencyKeyError(ValidationError):
    """Malformed client-supplied idempotency key."""


class SubscriberEmailError(ValidationError):
    """Malformed subscriber email address."""


class IdempotencyError(NewsletterError):
    """Idempotency record exists but holds no saved response."""


class SendError(NewsletterError):
    """Mail transport rejected or failed to deliver a message."""


class AuthError(NewsletterError):
    """Credentials were missing, unknown or did not verify."""


class SetupError(NewsletterError):
    """Fatal startup failure; the process must not start."""


class IssueNotFoundError(NewsletterError):
    """A queued task references an issue that cannot be loaded."""
