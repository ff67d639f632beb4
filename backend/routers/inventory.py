from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.auth import current_actor, current_food_bank, ensure_owner
from db.database import get_async_session, get_session_maker
from schemas.inventory import (
    InventoryAdjustmentCreate,
    InventoryItemCreate,
    InventoryItemRead,
    InventoryItemUpdate,
    InventoryMovementRead,
)
from services import inventory as inventory_service
from services.transactions import run_in_transaction

router = APIRouter()


async def _owned_item(db: AsyncSession, item_id: UUID, food_bank_id: UUID, *, for_update: bool = False):
    item = await inventory_service.get_item(db, item_id, for_update=for_update)
    ensure_owner(item.food_bank_id, food_bank_id, "inventory item")
    return item


@router.get("/items", response_model=List[InventoryItemRead])
async def list_inventory_items(
    db: AsyncSession = Depends(get_async_session),
    food_bank_id: UUID = Depends(current_food_bank),
):
    items = await inventory_service.load_inventory(db, food_bank_id)
    return [i.to_schema for i in items]


@router.get("/items/{item_id}", response_model=InventoryItemRead)
async def get_inventory_item(
    item_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    food_bank_id: UUID = Depends(current_food_bank),
):
    item = await _owned_item(db, item_id, food_bank_id)
    return item.to_schema


@router.post("/items", response_model=InventoryItemRead, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    payload: InventoryItemCreate,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    food_bank_id: UUID = Depends(current_food_bank),
    actor: Optional[str] = Depends(current_actor),
):
    async def body(db: AsyncSession):
        return await inventory_service.create_item(
            db,
            food_bank_id=food_bank_id,
            product_name=payload.product_name,
            brand=payload.brand,
            barcode=payload.barcode,
            unit=payload.unit,
            expiry_date=payload.expiry_date,
            quantity=payload.quantity,
            reserved_quantity=payload.reserved_quantity,
            created_by=actor,
        )

    item = await run_in_transaction(session_maker, body, label="inventory intake")
    return item.to_schema


@router.patch("/items/{item_id}", response_model=InventoryItemRead)
async def update_inventory_item(
    item_id: UUID,
    payload: InventoryItemUpdate,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    food_bank_id: UUID = Depends(current_food_bank),
):
    """Descriptive fields and reservation only; quantity changes go through /adjustments."""
    async def body(db: AsyncSession):
        item = await _owned_item(db, item_id, food_bank_id, for_update=True)
        if payload.product_name is not None:
            item.product_name = payload.product_name
        if payload.brand is not None:
            item.brand = payload.brand.strip()
        if payload.barcode is not None:
            item.barcode = payload.barcode.strip() or None
        if payload.unit is not None:
            item.unit = payload.unit
        if payload.expiry_date is not None:
            item.expiry_date = payload.expiry_date
        if payload.reserved_quantity is not None:
            inventory_service.set_reserved_quantity(item, payload.reserved_quantity)
        await db.flush()
        return item

    item = await run_in_transaction(session_maker, body, label=f"update inventory item {item_id}")
    return item.to_schema


@router.post("/items/{item_id}/adjustments", response_model=Dict, status_code=status.HTTP_201_CREATED)
async def adjust_inventory_item(
    item_id: UUID,
    payload: InventoryAdjustmentCreate,
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    food_bank_id: UUID = Depends(current_food_bank),
    actor: Optional[str] = Depends(current_actor),
):
    async def body(db: AsyncSession):
        # Re-read on every attempt so a retry applies the change to the current quantity
        item = await _owned_item(db, item_id, food_bank_id, for_update=True)
        movement = inventory_service.apply_quantity_change(
            db,
            item,
            payload.change,
            reason=payload.reason,
            source_type="manual",
            created_by=actor,
            note=payload.note,
        )
        await db.flush()
        return item, movement

    item, movement = await run_in_transaction(session_maker, body, label=f"adjust inventory item {item_id}")
    return {
        "movement": movement.to_schema,
        "item": item.to_schema,
    }


@router.get("/movements", response_model=List[InventoryMovementRead])
async def list_inventory_movements(
    item_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    food_bank_id: UUID = Depends(current_food_bank),
):
    if item_id is not None:
        await _owned_item(db, item_id, food_bank_id)
    movements = await inventory_service.list_movements(db, food_bank_id, item_id)
    return [m.to_schema for m in movements]
