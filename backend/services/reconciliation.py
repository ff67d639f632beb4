"""
Turn a counted "meals served" figure into inventory deductions.

For every ingredient of the session:

    needed    = ceil(expected_quantity * distributed / planned_batch)
    deducted  = min(needed, current quantity)        # never below zero
    variance  = needed - deducted                    # > 0 only on shortfall

The session update and all deductions commit together or not at all; audit
entries follow the commit.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import InvalidRange, InvalidState, NotFound, ReconciliationFailed, TransactionConflict
from db.database import utcnow
from db.distribution import DistributionSession, SESSION_ACTIVE, SESSION_COMPLETED
from db.inventory.item import InventoryItem
from services.audit_log import AuditLogWriter, AuditWarning, DeductionRecord
from services.inventory import REASON_DISTRIBUTION, apply_quantity_change
from services.resolver import parse_planned_servings
from services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Deduction:
    inventory_item_id: UUID
    product_name: str
    quantity_before: int
    quantity_after: int
    amount: int
    actual_quantity_needed: int
    variance: int


@dataclass
class ReconciliationResult:
    session: DistributionSession
    deductions: List[Deduction]
    has_variance: bool
    distributed_meal_count: int
    usage_ratio: float
    warnings: List[AuditWarning] = field(default_factory=list)


def _exact(value) -> Fraction:
    return Fraction(str(value or 0))


def quantity_needed(expected_quantity, distributed_meal_count: int, planned_batch: int) -> int:
    """ceil(expected * distributed / planned), computed without float drift."""
    planned = planned_batch if planned_batch > 0 else 1
    return math.ceil(_exact(expected_quantity) * int(distributed_meal_count) / planned)


def variance_percentage(variance: int, expected_quantity) -> float:
    expected = _exact(expected_quantity)
    if expected == 0:
        return 0.0
    return float(Fraction(int(variance)) / expected * 100)


def validate_final_count(session: DistributionSession, final_meal_count) -> int:
    if isinstance(final_meal_count, bool) or not isinstance(final_meal_count, int):
        raise InvalidRange("final_meal_count must be a whole number", field="final_meal_count")
    initial = int(session.initial_meal_count)
    if final_meal_count < 0 or final_meal_count > initial:
        raise InvalidRange(
            f"final_meal_count must be between 0 and the initial count ({initial}), got {final_meal_count}",
            field="final_meal_count",
        )
    return final_meal_count


def ensure_active(session: DistributionSession) -> None:
    if session.status != SESSION_ACTIVE:
        raise InvalidState(
            f"Cannot change a distribution with status: {session.status}",
            field="status",
        )


async def load_session(db: AsyncSession, session_id: UUID, *, for_update: bool = False) -> DistributionSession:
    session = await db.get(DistributionSession, session_id, populate_existing=True, with_for_update=for_update)
    if session is None:
        raise NotFound(f"Distribution session {session_id} not found", field="session_id")
    return session


async def _deduct_all(
    db: AsyncSession,
    session_id: UUID,
    final_meal_count: int,
    performed_by: Optional[str],
    clock: Callable,
):
    # Everything is re-read here, on the attempt's own session
    session = await load_session(db, session_id, for_update=True)
    ensure_active(session)
    final_meal_count = validate_final_count(session, final_meal_count)

    distributed = int(session.initial_meal_count) - final_meal_count
    planned = parse_planned_servings(session.planned_servings)
    now = clock()

    deductions: List[Deduction] = []
    for usage in session.ingredient_usage:
        needed = quantity_needed(usage.expected_quantity, distributed, planned)
        usage.actual_quantity = needed
        usage.deducted_from_inventory = False
        usage.deducted_quantity = 0
        usage.deducted_at = None
        usage.variance = 0
        usage.variance_percentage = 0.0

        if usage.inventory_item_id is None:
            continue

        # Identity map: a second usage of the same item sees the first deduction
        item = await db.get(InventoryItem, usage.inventory_item_id, with_for_update=True)
        if item is None or item.food_bank_id != session.food_bank_id:
            logger.info("Session %s: inventory item %s is gone, nothing to deduct", session.id, usage.inventory_item_id)
            continue

        current = int(item.quantity or 0)
        amount = min(needed, current)
        if amount <= 0:
            continue

        apply_quantity_change(
            db, item, -amount,
            reason=REASON_DISTRIBUTION,
            source_type="distribution_session",
            source_session_id=session.id,
            created_by=performed_by,
        )
        usage.deducted_from_inventory = True
        usage.deducted_quantity = amount
        usage.deducted_at = now
        usage.variance = needed - amount
        usage.variance_percentage = variance_percentage(usage.variance, usage.expected_quantity)

        deductions.append(
            Deduction(
                inventory_item_id=item.id,
                product_name=item.product_name,
                quantity_before=current,
                quantity_after=int(item.quantity),
                amount=amount,
                actual_quantity_needed=needed,
                variance=usage.variance,
            )
        )

    has_variance = any(abs(int(u.variance or 0)) > 0 for u in session.ingredient_usage)

    session.status = SESSION_COMPLETED
    session.final_meal_count = final_meal_count
    session.distributed_meal_count = distributed
    session.has_variance = has_variance
    session.completed_at = now
    session.completed_by = performed_by
    await db.flush()

    usage_ratio = float(Fraction(distributed, planned))
    return session, deductions, has_variance, distributed, usage_ratio


async def reconcile(
    session_maker: async_sessionmaker[AsyncSession],
    session_id: UUID,
    final_meal_count: int,
    *,
    audit: AuditLogWriter,
    performed_by: Optional[str] = None,
    performed_by_name: Optional[str] = None,
    max_attempts: Optional[int] = None,
    clock: Callable = utcnow,
) -> ReconciliationResult:
    async def body(db: AsyncSession):
        return await _deduct_all(db, session_id, final_meal_count, performed_by, clock)

    try:
        session, deductions, has_variance, distributed, usage_ratio = await run_in_transaction(
            session_maker, body, max_attempts=max_attempts, label=f"reconcile {session_id}",
        )
    except TransactionConflict as exc:
        raise ReconciliationFailed(
            f"Could not complete the distribution after {exc.attempts} attempts; no inventory was changed",
            attempts=exc.attempts,
        ) from exc
    except SQLAlchemyError as exc:
        logger.exception("Reconciliation of session %s failed in the store", session_id)
        raise ReconciliationFailed(
            "The inventory store rejected the distribution; no inventory was changed",
            attempts=1,
        ) from exc

    logger.info(
        "Session %s completed: %d meals distributed, %d items deducted, variance=%s",
        session.id, distributed, len(deductions), has_variance,
    )

    warnings = await audit.session_completed(
        session,
        [
            DeductionRecord(
                inventory_item_id=d.inventory_item_id,
                product_name=d.product_name,
                quantity_before=d.quantity_before,
                quantity_after=d.quantity_after,
            )
            for d in deductions
        ],
        performed_by=performed_by,
        performed_by_name=performed_by_name,
    )
    return ReconciliationResult(
        session=session,
        deductions=deductions,
        has_variance=has_variance,
        distributed_meal_count=distributed,
        usage_ratio=usage_ratio,
        warnings=warnings,
    )
