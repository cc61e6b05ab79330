"""
ActivityPublisher -- after-commit delivery of activity events.

Responsibility:
    Buffers ActivityEvent values on the session (``session.info``) while a
    unit of work runs and hands them to their sink only once the outermost
    transaction commits.  A rollback discards the buffer.

Architecture position:
    Kernel > Services.  Listeners are registered once on the Session class
    (``register_activity_listeners``), the same way ORM listeners are wired
    elsewhere in the kernel.

Invariants enforced:
    - No event is published for work that did not commit.
    - A failing sink never affects the committed work: the exception is
      logged as ``activity_publish_failed`` and dropped.
"""

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from erp_kernel.domain.activity import ActivityEvent, ActivitySink
from erp_kernel.logging_config import get_logger

logger = get_logger("services.activity")

_PENDING_KEY = "erp_pending_activity"


def _publish_after_commit(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for sink, activity in pending:
        try:
            sink.publish(activity)
        except Exception:
            logger.exception(
                "activity_publish_failed",
                extra={
                    "activity_action": activity.action,
                    "activity_document_id": str(activity.document_id),
                },
            )


def _discard_after_transaction_end(session: Session, transaction: SessionTransaction) -> None:
    # after_commit has already drained the buffer on success.
    if transaction.parent is None:
        session.info.pop(_PENDING_KEY, None)


def register_activity_listeners() -> None:
    """Wire the after-commit hooks on the Session class (idempotent)."""
    if not event.contains(Session, "after_commit", _publish_after_commit):
        event.listen(Session, "after_commit", _publish_after_commit)
    if not event.contains(Session, "after_transaction_end", _discard_after_transaction_end):
        event.listen(Session, "after_transaction_end", _discard_after_transaction_end)


class ActivityPublisher:
    """Queues events on a session for delivery after commit."""

    def __init__(self, session: Session, sink: ActivitySink):
        register_activity_listeners()
        self._session = session
        self._sink = sink

    def record(self, activity: ActivityEvent) -> None:
        self._session.info.setdefault(_PENDING_KEY, []).append((self._sink, activity))
        logger.debug(
            "activity_buffered",
            extra={"activity_action": activity.action, "activity_document_id": str(activity.document_id)},
        )

    def pending(self) -> list[ActivityEvent]:
        return [activity for _, activity in self._session.info.get(_PENDING_KEY, [])]
