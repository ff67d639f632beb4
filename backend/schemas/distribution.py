from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ResolvedIngredientIn(BaseModel):
    product_name: str
    estimated_quantity: float = Field(ge=0)
    unit: str
    total_amount: Optional[str] = None
    inventory_item_id: Optional[UUID] = None
    barcode: Optional[str] = None

    @field_validator("product_name", "unit")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v


class DistributionPreviewRequest(BaseModel):
    recipe_id: UUID
    threshold: Optional[float] = Field(default=None, ge=0)


class DistributionStartRequest(BaseModel):
    recipe_id: UUID
    initial_meal_count: int
    # Omit to resolve against the current inventory at start time
    ingredients: Optional[List[ResolvedIngredientIn]] = None
    threshold: Optional[float] = Field(default=None, ge=0)
    started_by_name: Optional[str] = None


class MealCountRequest(BaseModel):
    count: int


class DistributionCompleteRequest(BaseModel):
    final_meal_count: int
    performed_by_name: Optional[str] = None


class DistributionCancelRequest(BaseModel):
    performed_by_name: Optional[str] = None


class ResolvedIngredientRead(BaseModel):
    product_name: str
    estimated_quantity: float
    unit: str
    total_amount: Optional[str] = None
    inventory_item_id: Optional[UUID] = None
    barcode: Optional[str] = None
    confidence: float = 0.0


class AvailabilityRead(BaseModel):
    product_name: str
    inventory_item_id: UUID
    is_valid: bool
    available: int
    needed: float


class DistributionPreviewRead(BaseModel):
    recipe_id: UUID
    recipe_name: str
    planned_servings: str
    planned_batch: int
    ingredients: List[ResolvedIngredientRead]
    availability: List[AvailabilityRead]
    warnings: List[str]
    suggested_initial_count: int


class IngredientUsageRead(BaseModel):
    product_name: str
    inventory_item_id: Optional[UUID] = None
    barcode: Optional[str] = None
    expected_quantity: float
    expected_unit: str
    total_amount: Optional[str] = None
    actual_quantity: Optional[int] = None
    deducted_from_inventory: bool
    deducted_quantity: int
    deducted_at: Optional[datetime] = None
    variance: int
    variance_percentage: float


class DistributionSessionRead(BaseModel):
    id: UUID
    food_bank_id: UUID
    recipe_id: UUID
    recipe_name: str
    planned_servings: str
    status: str
    initial_meal_count: int
    final_meal_count: Optional[int] = None
    distributed_meal_count: Optional[int] = None
    has_variance: bool
    started_by: Optional[str] = None
    started_by_name: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    ingredient_usage: List[IngredientUsageRead]


class DeductionRead(BaseModel):
    inventory_item_id: UUID
    product_name: str
    quantity_before: int
    quantity_after: int
    amount: int
    actual_quantity_needed: int
    variance: int


class AuditWarningRead(BaseModel):
    action: str
    message: str


class DistributionCompleteRead(BaseModel):
    session: DistributionSessionRead
    deductions: List[DeductionRead]
    has_variance: bool
    distributed_meal_count: int
    usage_ratio: float
    warnings: List[AuditWarningRead]


class UsagePreviewRead(BaseModel):
    product_name: str
    inventory_item_id: Optional[UUID] = None
    expected_quantity: float
    expected_unit: str
    actual_quantity_needed: int


class DistributionLogRead(BaseModel):
    id: UUID
    distribution_session_id: UUID
    action: str
    inventory_item_id: Optional[UUID] = None
    product_name: Optional[str] = None
    quantity_before: Optional[int] = None
    quantity_after: Optional[int] = None
    quantity_changed: Optional[int] = None
    performed_by: Optional[str] = None
    performed_by_name: Optional[str] = None
    performed_at: Optional[datetime] = None
    notes: Optional[str] = None
