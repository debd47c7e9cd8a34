"""
Retrying all-or-nothing transaction runner.

The unit of work passed to ``TransactionRunner.run`` reads, validates and
mutates rows through the session and returns a result; the runner commits.
Rows mapped with a ``version_id_col`` turn a concurrent write into a
``StaleDataError`` at flush time; that, and the serialization/deadlock/lock
errors the database reports, roll the whole attempt back and run it again
from the first read, up to a bounded number of attempts and a wall-clock
deadline.
"""
import random
import time

from flask import current_app
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from models import db
from services.errors import BookingError, PermissionDenied, TransactionConflict, TransactionTimeout

# SQLSTATE / driver codes that mean "run it again"
_RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}
_RETRYABLE_MYSQL_CODES = {1205, 1213}
_RETRYABLE_SNIPPETS = (
    "database is locked",
    "database table is locked",
    "could not serialize access",
    "deadlock detected",
)

_PERMISSION_SQLSTATES = {"42501"}
_PERMISSION_MYSQL_CODES = {1142, 1044, 1045}
_PERMISSION_SNIPPETS = (
    "permission denied",
    "readonly database",
    "read-only",
)


def _sqlstate(exc: DBAPIError):
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _mysql_code(exc: DBAPIError):
    args = getattr(getattr(exc, "orig", None), "args", None) or ()
    return args[0] if args and isinstance(args[0], int) else None


def is_retryable_db_error(exc: DBAPIError) -> bool:
    if _sqlstate(exc) in _RETRYABLE_SQLSTATES or _mysql_code(exc) in _RETRYABLE_MYSQL_CODES:
        return True
    message = str(exc).lower()
    return any(snippet in message for snippet in _RETRYABLE_SNIPPETS)


def is_permission_denied(exc: DBAPIError) -> bool:
    if _sqlstate(exc) in _PERMISSION_SQLSTATES or _mysql_code(exc) in _PERMISSION_MYSQL_CODES:
        return True
    message = str(exc).lower()
    return any(snippet in message for snippet in _PERMISSION_SNIPPETS)


class TransactionRunner:
    def __init__(
        self,
        session=None,
        max_attempts: int = 3,
        timeout_seconds: float = 5.0,
        backoff_seconds: float = 0.05,
        sleep=time.sleep,
        monotonic=time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.session = session if session is not None else db.session
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._monotonic = monotonic

    @classmethod
    def from_config(cls, session=None, **overrides):
        cfg = current_app.config
        kwargs = {
            "max_attempts": int(cfg.get("BOOKING_MAX_ATTEMPTS", 3)),
            "timeout_seconds": float(cfg.get("BOOKING_TIMEOUT_SECONDS", 5.0)),
            "backoff_seconds": float(cfg.get("BOOKING_RETRY_BACKOFF_SECONDS", 0.05)),
        }
        kwargs.update(overrides)
        return cls(session=session, **kwargs)

    def _retry_delay(self, attempt: int) -> float:
        base = self.backoff_seconds * (2 ** (attempt - 1))
        return base + random.uniform(0, self.backoff_seconds * attempt)

    def run(self, op_name: str, work, retry_integrity_errors: bool = False, action: str = None):
        """
        Run ``work(session)`` to completion and commit, or raise.

        ``action`` names the operation in the user-facing conflict and
        timeout messages ("booking", "cancellation").

        ``retry_integrity_errors`` treats a unique/foreign-key clash as a lost
        race: the next attempt re-reads and reports the real reason.
        """
        deadline = self._monotonic() + self.timeout_seconds
        attempt = 1

        while True:
            try:
                result = work(self.session)
                self.session.commit()
                return result
            except BookingError:
                self.session.rollback()
                raise
            except StaleDataError as exc:
                self.session.rollback()
                failure = exc
            except IntegrityError as exc:
                self.session.rollback()
                if not retry_integrity_errors:
                    raise
                failure = exc
            except DBAPIError as exc:
                self.session.rollback()
                if is_permission_denied(exc):
                    raise PermissionDenied() from exc
                if not is_retryable_db_error(exc):
                    raise
                failure = exc
            except Exception:
                self.session.rollback()
                raise

            if attempt >= self.max_attempts:
                current_app.logger.warning(
                    "%s: giving up after %d attempts: %s", op_name, attempt, failure
                )
                raise TransactionConflict.for_action(action, attempts=attempt) from failure

            delay = self._retry_delay(attempt)
            if self._monotonic() + delay >= deadline:
                current_app.logger.warning(
                    "%s: deadline of %.2fs reached after %d attempts",
                    op_name, self.timeout_seconds, attempt,
                )
                raise TransactionTimeout.for_action(action, attempts=attempt) from failure

            current_app.logger.info(
                "%s: conflict on attempt %d, retrying in %.3fs (%s)",
                op_name, attempt, delay, type(failure).__name__,
            )
            self._sleep(delay)
            attempt += 1
