"""
TransactionRunner -- one database transaction per command.

Responsibility:
    Opens a session, runs the command, commits on success and rolls back on
    any error, so a command's status flip, applied marker and ledger deltas
    commit together or not at all.  Lock-related database errors become
    ConcurrencyConflictError and are retried a bounded number of times with
    exponential backoff; every other error propagates unchanged after the
    rollback.

Usage:
    runner = TransactionRunner(get_session_factory(), max_attempts=3)
    completion = runner.run(
        lambda session: TransferWorkflow(session, clock).complete(transfer_id, actor=actor),
        name="transfer.complete",
    )
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from stock_kernel.exceptions import ConcurrencyConflictError
from stock_kernel.logging_config import get_logger

logger = get_logger("services.transaction_runner")

T = TypeVar("T")

# PostgreSQL SQLSTATEs: lock_not_available, deadlock_detected, serialization_failure
_CONFLICT_SQLSTATES = frozenset({"55P03", "40P01", "40001"})

_CONFLICT_MESSAGES = (
    "database is locked",
    "lock timeout",
    "deadlock detected",
    "could not serialize",
    "could not obtain lock",
)


def as_concurrency_conflict(exc: DBAPIError) -> ConcurrencyConflictError | None:
    """Translate a lock-related DBAPI error; None for anything else."""
    sqlstate = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    message = str(exc.orig).lower()
    if sqlstate in _CONFLICT_SQLSTATES or any(m in message for m in _CONFLICT_MESSAGES):
        return ConcurrencyConflictError(f"Concurrent update conflict: {str(exc.orig).strip()}")
    return None


class TransactionRunner:
    """Runs ``operation(session)`` inside one committed-or-rolled-back transaction."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session_factory = session_factory
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    def run(self, operation: Callable[[Session], T], *, name: str = "command") -> T:
        attempt = 0
        while True:
            attempt += 1
            conflict: ConcurrencyConflictError | None = None
            session = self._session_factory()
            try:
                result = operation(session)
                session.commit()
                logger.debug(
                    "transaction_committed",
                    extra={"command": name, "attempt": attempt},
                )
                return result
            except ConcurrencyConflictError as exc:
                session.rollback()
                conflict = exc
            except DBAPIError as exc:
                session.rollback()
                conflict = as_concurrency_conflict(exc)
                if conflict is None:
                    logger.warning(
                        "transaction_rolled_back",
                        extra={"command": name, "attempt": attempt},
                        exc_info=True,
                    )
                    raise
                conflict.__cause__ = exc
            except Exception as exc:
                session.rollback()
                logger.info(
                    "transaction_rolled_back",
                    extra={
                        "command": name,
                        "attempt": attempt,
                        "error_code": getattr(exc, "code", type(exc).__name__),
                    },
                )
                raise
            finally:
                session.close()

            if attempt >= self._max_attempts:
                logger.warning(
                    "concurrency_conflict_exhausted",
                    extra={"command": name, "attempts": attempt},
                )
                raise conflict

            delay = self._backoff_seconds * (2 ** (attempt - 1))
            logger.info(
                "concurrency_conflict_retry",
                extra={"command": name, "attempt": attempt, "delay_seconds": delay},
            )
            self._sleep(delay)
