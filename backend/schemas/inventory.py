from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


AdjustmentReason = Literal["INTAKE", "ADJUSTMENT"]


class InventoryItemCreate(BaseModel):
    product_name: str
    brand: str = ""
    barcode: Optional[str] = None
    unit: str = "container"
    expiry_date: Optional[date] = None
    quantity: int = Field(default=0, ge=0)
    reserved_quantity: int = Field(default=0, ge=0)

    @field_validator("product_name", "unit")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("brand")
    @classmethod
    def _strip_brand(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @model_validator(mode="after")
    def _reserved_within_quantity(self):
        if self.reserved_quantity > self.quantity:
            raise ValueError("reserved_quantity cannot exceed quantity")
        return self


class InventoryItemUpdate(BaseModel):
    product_name: Optional[str] = None
    brand: Optional[str] = None
    barcode: Optional[str] = None
    unit: Optional[str] = None
    expiry_date: Optional[date] = None
    reserved_quantity: Optional[int] = Field(default=None, ge=0)

    @field_validator("product_name", "unit")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = (v or "").strip()
        if not v:
            raise ValueError("cannot be empty")
        return v


class InventoryAdjustmentCreate(BaseModel):
    change: int
    reason: AdjustmentReason = "ADJUSTMENT"
    note: Optional[str] = None

    @field_validator("change")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if int(v) == 0:
            raise ValueError("change cannot be 0")
        return int(v)

    @model_validator(mode="after")
    def _intake_is_positive(self):
        if self.reason == "INTAKE" and self.change < 0:
            raise ValueError("INTAKE movements must have a positive change")
        return self


class InventoryItemRead(BaseModel):
    id: UUID
    food_bank_id: UUID
    product_name: str
    brand: str
    barcode: Optional[str] = None
    unit: str
    expiry_date: Optional[date] = None
    quantity: int
    reserved_quantity: int
    distributed_quantity: int
    available_quantity: int


class InventoryMovementRead(BaseModel):
    id: UUID
    inventory_item_id: UUID
    change: int
    quantity_before: int
    quantity_after: int
    reason: str
    source_type: Optional[str] = None
    source_session_id: Optional[UUID] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
