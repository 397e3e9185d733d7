"""Scoped transactions for cart and stock operations.

``run_in_transaction`` is the only place that commits or rolls back on
behalf of the core: the operation it wraps reads and writes through the
session it is handed and never commits on its own.
"""

import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from core.logging import get_logger
from core.result import ErrorKind, Result

logger = get_logger(__name__)

DEFAULT_RETRIES = 3
BACKOFF_SECONDS = 0.05

# lost unique-constraint races, lock timeouts, stale cart item versions
TRANSIENT_ERRORS = (IntegrityError, OperationalError, StaleDataError)

# SQLite, MySQL and PostgreSQL wordings of a unique-key violation
UNIQUE_VIOLATION_MARKERS = ("unique constraint", "duplicate entry", "duplicate key")
UNIQUE_VIOLATION_PGCODE = "23505"


def is_transient(exc):
    """Tell whether replaying the operation can succeed after ``exc``.

    An ``IntegrityError`` only qualifies when it is a unique-key violation,
    the trace of two writers racing to insert the same cart or cart line.
    Foreign-key and check violations fail the same way on every attempt.
    """
    if not isinstance(exc, IntegrityError):
        return isinstance(exc, TRANSIENT_ERRORS)
    if getattr(exc.orig, "pgcode", None) == UNIQUE_VIOLATION_PGCODE:
        return True
    message = str(exc.orig).lower()
    return any(marker in message for marker in UNIQUE_VIOLATION_MARKERS)


def run_in_transaction(session, operation, *args, retries=DEFAULT_RETRIES, **kwargs):
    """Run ``operation(session, *args, **kwargs)`` as a single unit of work.

    The operation must return a ``Result``. A successful result is committed,
    a failed one is rolled back, so no failure ever leaves stock or cart rows
    half-updated. Transient store errors roll back and replay the operation
    up to ``retries`` times, after which a ``CONFLICT`` result is returned.
    Anything else, integrity errors other than unique-key races included,
    rolls back and propagates.
    """
    attempts = max(1, retries)
    name = getattr(operation, "__name__", repr(operation))

    for attempt in range(1, attempts + 1):
        try:
            result = operation(session, *args, **kwargs)
            if result.ok:
                session.commit()
            else:
                session.rollback()
            return result
        except TRANSIENT_ERRORS as exc:
            session.rollback()
            if not is_transient(exc):
                raise
            logger.warning(
                "transaction_conflict",
                operation=name,
                attempt=attempt,
                attempts=attempts,
                error=str(getattr(exc, "orig", exc)),
            )
            if attempt < attempts:
                time.sleep(BACKOFF_SECONDS * attempt)
        except Exception:
            session.rollback()
            raise

    logger.error("transaction_retries_exhausted", operation=name, attempts=attempts)
    return Result.failure(ErrorKind.CONFLICT, "The request conflicted with a concurrent update, please retry")
