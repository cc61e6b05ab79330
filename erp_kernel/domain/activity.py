"""
Activity events -- the structured record each committed action emits.

The payload is built explicitly by the action that ran (never by
reflecting over call arguments) and handed to an ``ActivitySink`` after the
unit of work commits.  Sinks are best-effort collaborators: persistence,
formatting and delivery are theirs.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from erp_kernel.logging_config import get_logger

logger = get_logger("domain.activity")


@dataclass(frozen=True)
class ActivityEvent:
    actor_id: UUID
    action: str
    document_type: str
    document_id: UUID
    description: str
    timestamp: datetime

    def as_dict(self) -> dict[str, str]:
        return {
            "actor_id": str(self.actor_id),
            "action": self.action,
            "document_type": self.document_type,
            "document_id": str(self.document_id),
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
        }


@runtime_checkable
class ActivitySink(Protocol):
    """Receives one event per committed action."""

    def publish(self, event: ActivityEvent) -> None: ...


class LoggingActivitySink:
    """Default sink: writes each event to the structured log."""

    def publish(self, event: ActivityEvent) -> None:
        logger.info("activity_recorded", extra=event.as_dict())
