"""
Unit of work for orchestration services.

Every public action runs inside ``unit_of_work``: commit on success,
rollback and re-raise on failure.  Infrastructure errors are translated
so callers can tell a retryable storage failure from a business-rule
violation.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from erp_kernel.exceptions import StaleStateError, TransientStorageError
from erp_kernel.logging_config import get_logger

logger = get_logger("services.unit_of_work")


@contextmanager
def unit_of_work(session: Session, operation: str) -> Iterator[Session]:
    try:
        yield session
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        logger.warning("stale_state_detected", extra={"operation": operation})
        raise StaleStateError("document", "unknown") from exc
    except OperationalError as exc:
        session.rollback()
        logger.warning(
            "transient_storage_error",
            extra={"operation": operation, "detail": str(exc.orig)},
        )
        raise TransientStorageError(operation, str(exc.orig)) from exc
    except Exception:
        session.rollback()
        raise
