from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class TaskDisposition(str, Enum):
    # REMOVE deletes the queue row and commits; RETAIN rolls back so the row stays pending.
    REMOVE = "remove"
    RETAIN = "retain"


@dataclass(frozen=True)
class DeliveryContext:
    """Identifies one task attempt; passed explicitly and attached to log records."""

    worker_id: str
    newsletter_issue_id: str
    subscriber_email: str

    def log_extra(self) -> dict[str, str]:
        return {
            "worker_id": self.worker_id,
            "newsletter_issue_id": self.newsletter_issue_id,
            "subscriber_email": self.subscriber_email,
        }


class DeliveryFailurePolicy(Protocol):
    async def on_invalid_recipient(self, context: DeliveryContext, error: Exception) -> TaskDisposition:
        ...

    async def on_send_failure(self, context: DeliveryContext, error: Exception) -> TaskDisposition:
        ...


class DiscardFailedDeliveries:
    """At most one local attempt per task: failed sends are logged and dropped.

    No re-queue, retry counter or dead-letter table. A process crash before the
    delete still leaves the row for another worker.
    """

    async def on_invalid_recipient(self, context: DeliveryContext, error: Exception) -> TaskDisposition:
        return TaskDisposition.REMOVE

    async def on_send_failure(self, context: DeliveryContext, error: Exception) -> TaskDisposition:
        return TaskDisposition.REMOVE
