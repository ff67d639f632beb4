"""
The one write path for inventory quantity.

Reconciliation, intake and manual adjustments all call
``apply_quantity_change``; nothing else assigns ``InventoryItem.quantity``.
None of these functions commit: the caller owns the transaction.
"""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import InvalidInput, InvalidRange, NotFound
from db.inventory.item import InventoryItem
from db.inventory.movement import InventoryMovement

logger = logging.getLogger(__name__)

REASON_INTAKE = "INTAKE"
REASON_ADJUSTMENT = "ADJUSTMENT"
REASON_DISTRIBUTION = "DISTRIBUTION"
REASONS = (REASON_INTAKE, REASON_ADJUSTMENT, REASON_DISTRIBUTION)


def apply_quantity_change(
    db: AsyncSession,
    item: InventoryItem,
    delta: int,
    *,
    reason: str,
    source_type: Optional[str] = None,
    source_session_id: Optional[UUID] = None,
    created_by: Optional[str] = None,
    note: Optional[str] = None,
) -> InventoryMovement:
    if reason not in REASONS:
        raise InvalidInput(f"Unknown movement reason: {reason}", field="reason")
    delta = int(delta)
    if reason == REASON_DISTRIBUTION and delta > 0:
        raise InvalidInput("DISTRIBUTION movements must have a negative change", field="change")

    before = int(item.quantity or 0)
    after = before + delta
    if after < 0:
        raise InvalidInput(
            f"Change of {delta} would leave {item.product_name!r} at {after}; quantity cannot go below 0",
            field="change",
        )

    item.quantity = after
    if reason == REASON_DISTRIBUTION:
        item.distributed_quantity = int(item.distributed_quantity or 0) - delta
    # Reservations cannot outlive the stock they reserve
    if int(item.reserved_quantity or 0) > after:
        item.reserved_quantity = after

    movement = InventoryMovement(
        food_bank_id=item.food_bank_id,
        inventory_item_id=item.id,
        change=delta,
        quantity_before=before,
        quantity_after=after,
        reason=reason,
        source_type=source_type,
        source_session_id=source_session_id,
        created_by=created_by,
        note=note,
    )
    db.add(movement)
    logger.debug("inventory %s %s: %d -> %d (%s)", item.id, reason, before, after, source_type or "-")
    return movement


def set_reserved_quantity(item: InventoryItem, reserved: int) -> None:
    reserved = int(reserved)
    if reserved < 0 or reserved > int(item.quantity or 0):
        raise InvalidRange(
            f"reserved_quantity must be between 0 and {int(item.quantity or 0)}",
            field="reserved_quantity",
        )
    item.reserved_quantity = reserved


async def create_item(
    db: AsyncSession,
    *,
    food_bank_id: UUID,
    product_name: str,
    brand: str = "",
    barcode: Optional[str] = None,
    unit: str = "container",
    expiry_date=None,
    quantity: int = 0,
    reserved_quantity: int = 0,
    created_by: Optional[str] = None,
) -> InventoryItem:
    """Intake: the record starts empty and the opening stock arrives as an INTAKE movement."""
    item = InventoryItem(
        food_bank_id=food_bank_id,
        product_name=product_name,
        brand=brand or "",
        barcode=barcode,
        unit=unit,
        expiry_date=expiry_date,
        quantity=0,
        reserved_quantity=0,
        distributed_quantity=0,
    )
    db.add(item)
    await db.flush()
    if quantity:
        apply_quantity_change(db, item, int(quantity), reason=REASON_INTAKE, source_type="intake", created_by=created_by)
    if reserved_quantity:
        set_reserved_quantity(item, reserved_quantity)
    return item


async def get_item(db: AsyncSession, item_id: UUID, *, for_update: bool = False) -> InventoryItem:
    item = await db.get(InventoryItem, item_id, populate_existing=True, with_for_update=for_update)
    if item is None:
        raise NotFound(f"Inventory item {item_id} not found", field="inventory_item_id")
    return item


async def load_inventory(db: AsyncSession, food_bank_id: UUID) -> List[InventoryItem]:
    """Read-only snapshot in a stable order (ties in matching go to the first item)."""
    res = await db.execute(
        select(InventoryItem)
        .where(InventoryItem.food_bank_id == food_bank_id)
        .order_by(InventoryItem.created_at.asc(), InventoryItem.product_name.asc())
    )
    return list(res.scalars().all())


async def list_movements(db: AsyncSession, food_bank_id: UUID, item_id: Optional[UUID] = None) -> List[InventoryMovement]:
    stmt = select(InventoryMovement).where(InventoryMovement.food_bank_id == food_bank_id)
    if item_id is not None:
        stmt = stmt.where(InventoryMovement.inventory_item_id == item_id)
    stmt = stmt.order_by(InventoryMovement.created_at.asc())
    res = await db.execute(stmt)
    return list(res.scalars().all())
