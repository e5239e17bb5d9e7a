"""Atomic units of work with bounded retry on lock contention."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from .exceptions import TransactionAbortedError
from .locking import InventoryLockManager, LockScope, LockSetChangedError, LockTimeoutError
from .observability import get_logger, metrics_collector

logger = get_logger(__name__)

T = TypeVar("T")

# Errors that mean "someone else got there first", never "the request is wrong"
RETRYABLE_ERRORS = (
    OperationalError,
    StaleDataError,
    IntegrityError,
    LockTimeoutError,
    LockSetChangedError,
)


@dataclass
class UnitOfWork:
    """What one attempt of an atomic operation gets to work with."""

    session: AsyncSession
    locks: LockScope
    attempt: int


def compute_backoff(attempt: int, base_seconds: float, max_seconds: float = 2.0) -> float:
    """Exponential backoff with full jitter on top."""
    if base_seconds <= 0:
        return 0.0
    delay = min(base_seconds * (2 ** (attempt - 1)), max_seconds)
    return delay + random.uniform(0, base_seconds)


async def run_in_transaction(
    session: AsyncSession,
    lock_manager: InventoryLockManager,
    operation: str,
    work: Callable[[UnitOfWork], Awaitable[T]],
    *,
    attempts: int = 3,
    backoff_seconds: float = 0.05,
) -> T:
    """
    Run ``work`` as a single atomic transaction, retrying on contention.

    Each attempt gets a fresh lock scope. Everything the attempt wrote is
    committed together or rolled back together, and all locks are released
    once the outcome is settled. The rollback expires every ORM instance in
    the session, so ``work`` must reload whatever it mutates.

    Raises:
        TransactionAbortedError: If every attempt failed on a retryable error
    """
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        scope = lock_manager.scope()
        try:
            result = await work(UnitOfWork(session=session, locks=scope, attempt=attempt))
            await session.commit()
            return result
        except RETRYABLE_ERRORS as e:
            await session.rollback()
            last_error = e
            metrics_collector.record_transaction_retry(operation)
            logger.warning(
                "Inventory transaction attempt failed",
                operation=operation,
                attempt=attempt,
                max_attempts=attempts,
                error_type=type(e).__name__,
                error=str(e),
            )
        except BaseException:
            await session.rollback()
            raise
        finally:
            scope.release_all()

        if attempt < attempts:
            await asyncio.sleep(compute_backoff(attempt, backoff_seconds))

    metrics_collector.record_transaction_aborted(operation)
    logger.error(
        "Inventory transaction aborted",
        operation=operation,
        attempts=attempts,
        error_type=type(last_error).__name__,
    )
    raise TransactionAbortedError(operation, attempts, cause=type(last_error).__name__) from last_error
