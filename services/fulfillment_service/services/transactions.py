"""Atomic units of work with bounded retry on transient storage failures."""

import asyncio
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from libs.common.logging import get_logger
from services.fulfillment_service.errors import (
    StorageRetryExhaustedError,
    TransientStorageError,
)

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03"})
TRANSIENT_MESSAGES = ("database is locked", "deadlock detected", "could not serialize")


def is_transient_error(exc: BaseException) -> bool:
    """Whether ``exc`` is a storage failure that a fresh attempt may not hit."""
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(fragment in message for fragment in TRANSIENT_MESSAGES)


async def run_atomic(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    operation: str,
    max_attempts: int = 3,
    backoff_seconds: float = 0.05,
) -> T:
    """
    Run ``work`` inside one transaction, retrying the whole unit on transient
    storage errors.

    Each attempt gets a fresh session; any exception rolls the attempt back.
    Non-transient exceptions propagate unchanged after the rollback.

    Raises:
        StorageRetryExhaustedError: Every attempt failed transiently.
    """
    last_error: TransientStorageError | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            async with session_factory() as db:
                async with db.begin():
                    return await work(db)
        except DBAPIError as e:
            if not is_transient_error(e):
                raise
            last_error = TransientStorageError(str(e.orig))
            logger.warning(
                "%s hit transient storage error (attempt %s/%s): %s",
                operation,
                attempt,
                max_attempts,
                e.orig,
            )
            if attempt < max_attempts:
                await asyncio.sleep(backoff_seconds * attempt)

    logger.error("%s gave up after %s attempts", operation, max_attempts)
    raise StorageRetryExhaustedError(operation, max_attempts) from last_error
