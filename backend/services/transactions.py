"""
Run a unit of work as one transaction, retrying on write conflicts.

Each attempt gets a brand-new AsyncSession, so every read inside ``body`` is
taken fresh; nothing is cached across attempts. Domain errors raised by the
body roll the attempt back and propagate unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from core.config import settings
from core.errors import TransactionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (StaleDataError, TransactionConflict)):
        return True
    if isinstance(exc, DBAPIError) and not exc.connection_invalidated:
        orig = getattr(exc, "orig", None)
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _RETRYABLE_SQLSTATES:
            return True
        if isinstance(exc, OperationalError) and "locked" in str(orig).lower():
            return True
    return False


async def run_in_transaction(
    session_maker: async_sessionmaker[AsyncSession],
    body: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: Optional[int] = None,
    backoff_ms: Optional[int] = None,
    label: str = "transaction",
) -> T:
    attempts = max(1, int(max_attempts or settings.txn_max_attempts))
    backoff = settings.txn_retry_backoff_ms if backoff_ms is None else backoff_ms

    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            async with session_maker() as db:
                async with db.begin():
                    return await body(db)
        except Exception as exc:
            if not is_retryable(exc):
                raise
            last_error = exc
            logger.warning("%s conflict on attempt %d/%d: %s", label, attempt, attempts, exc.__class__.__name__)
            if attempt < attempts and backoff:
                await asyncio.sleep(backoff * attempt / 1000.0)

    logger.error("%s gave up after %d attempts", label, attempts)
    raise TransactionConflict(
        f"{label} conflicted with concurrent updates {attempts} times",
        attempts=attempts,
    ) from last_error
