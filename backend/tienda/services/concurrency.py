# Overview: Transaction boundary and bounded retry for ledger-mutating operations.

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Lock timeouts, deadlocks and optimistic version conflicts. Business errors
# are never in this tuple.
TRANSIENT_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the unit of work opens SQLite
    transactions with BEGIN IMMEDIATE instead.
    """
    return query.with_for_update()


def run_in_transaction(
    uow,
    func: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_base: float = 0.05,
) -> T:
    """
    Execute func as one atomic unit: begin, run, commit.

    Any exception rolls the whole unit back. Transient conflicts are retried
    up to `attempts` times with exponential backoff, then surface as
    ConcurrencyConflict. Everything else propagates unchanged.
    """
    for attempt in range(attempts):
        try:
            uow.begin()
            result = func()
            uow.commit()
            return result
        except TRANSIENT_ERRORS as exc:
            uow.rollback()
            logger.warning(
                "transaction.conflict",
                extra={"attempt": attempt + 1, "attempts": attempts, "error": type(exc).__name__},
            )
            if attempt < attempts - 1:
                time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            uow.rollback()
            raise
    raise ConcurrencyConflict(attempts)
