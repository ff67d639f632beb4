"""
Append-only audit trail for distribution sessions.

Entries are written after the business transaction has committed and on a
separate session. A failed write is logged and handed back to the caller as
an ``AuditWarning``; it never undoes the committed inventory change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.database import utcnow
from db.distribution import DistributionSession
from db.distribution_log import (
    DistributionLog,
    LOG_COUNTING_COMPLETED,
    LOG_INVENTORY_DEDUCTED,
    LOG_SESSION_CANCELLED,
    LOG_SESSION_STARTED,
)

logger = logging.getLogger(__name__)


class LogSink(Protocol):
    async def append(self, entry: DistributionLog) -> None:
        ...


class SqlLogSink:
    """Writes each entry in its own short transaction."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def append(self, entry: DistributionLog) -> None:
        async with self._session_maker() as db:
            async with db.begin():
                db.add(entry)


@dataclass(frozen=True)
class AuditWarning:
    action: str
    message: str


@dataclass(frozen=True)
class DeductionRecord:
    inventory_item_id: UUID
    product_name: str
    quantity_before: int
    quantity_after: int


class AuditLogWriter:
    def __init__(self, sink: LogSink, clock: Callable[[], datetime] = utcnow):
        self._sink = sink
        self._clock = clock

    def _entry(
        self,
        session: DistributionSession,
        action: str,
        *,
        performed_by: Optional[str],
        performed_by_name: Optional[str],
        notes: str,
        deduction: Optional[DeductionRecord] = None,
    ) -> DistributionLog:
        entry = DistributionLog(
            food_bank_id=session.food_bank_id,
            distribution_session_id=session.id,
            action=action,
            performed_by=performed_by,
            performed_by_name=performed_by_name or "Unknown",
            notes=notes,
        )
        if deduction is not None:
            entry.inventory_item_id = deduction.inventory_item_id
            entry.product_name = deduction.product_name
            entry.quantity_before = deduction.quantity_before
            entry.quantity_after = deduction.quantity_after
            entry.quantity_changed = deduction.quantity_before - deduction.quantity_after
        return entry

    async def _write(self, entries: Sequence[DistributionLog]) -> List[AuditWarning]:
        warnings: List[AuditWarning] = []
        stamped_at = self._clock()
        for seq, entry in enumerate(entries):
            entry.performed_at = stamped_at
            entry.sequence = seq
            try:
                await self._sink.append(entry)
            except Exception as exc:
                logger.warning(
                    "Audit write failed for session %s (%s): %s",
                    entry.distribution_session_id, entry.action, exc.__class__.__name__,
                )
                warnings.append(
                    AuditWarning(action=entry.action, message=f"Audit log entry '{entry.action}' could not be written")
                )
        return warnings

    async def session_started(self, session, *, performed_by=None, performed_by_name=None) -> List[AuditWarning]:
        return await self._write([
            self._entry(
                session, LOG_SESSION_STARTED,
                performed_by=performed_by, performed_by_name=performed_by_name,
                notes=f"Distribution started with {session.initial_meal_count} meals planned",
            )
        ])

    async def initial_count_set(self, session, *, performed_by=None, performed_by_name=None) -> List[AuditWarning]:
        return await self._write([
            self._entry(
                session, LOG_COUNTING_COMPLETED,
                performed_by=performed_by, performed_by_name=performed_by_name,
                notes=f"Initial meal count set to {session.initial_meal_count}",
            )
        ])

    async def session_completed(
        self,
        session,
        deductions: Sequence[DeductionRecord],
        *,
        performed_by=None,
        performed_by_name=None,
    ) -> List[AuditWarning]:
        entries = [
            self._entry(
                session, LOG_INVENTORY_DEDUCTED,
                performed_by=performed_by, performed_by_name=performed_by_name,
                notes="Inventory deducted for distribution",
                deduction=d,
            )
            for d in deductions
        ]
        entries.append(
            self._entry(
                session, LOG_COUNTING_COMPLETED,
                performed_by=performed_by, performed_by_name=performed_by_name,
                notes=f"Distribution completed. {session.distributed_meal_count} meals distributed.",
            )
        )
        return await self._write(entries)

    async def session_cancelled(self, session, *, performed_by=None, performed_by_name=None) -> List[AuditWarning]:
        return await self._write([
            self._entry(
                session, LOG_SESSION_CANCELLED,
                performed_by=performed_by, performed_by_name=performed_by_name,
                notes="Distribution cancelled by user",
            )
        ])


async def list_logs(db: AsyncSession, session_id: UUID) -> List[DistributionLog]:
    res = await db.execute(
        select(DistributionLog)
        .where(DistributionLog.distribution_session_id == session_id)
        .order_by(DistributionLog.performed_at.asc(), DistributionLog.sequence.asc())
    )
    return list(res.scalars().all())
