from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RecipeIngredientIn(BaseModel):
    """One ingredient as emitted by the recipe generator (camelCase or snake_case keys)."""
    model_config = ConfigDict(populate_by_name=True)

    product_name: str = Field(alias="productName")
    estimated_quantity: float = Field(alias="estimatedQuantity", gt=0)
    unit: str
    total_amount: Optional[str] = Field(default=None, alias="totalAmount")

    @field_validator("product_name", "unit")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("field is required")
        return v

    @field_validator("total_amount")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class RecipeCreate(BaseModel):
    name: str
    servings: str = "1"
    # Raw generator output; validated entry by entry in services.resolver.parse_ingredients
    ingredients: List[Any] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Recipe name cannot be empty")
        return v

    @field_validator("servings", mode="before")
    @classmethod
    def _servings(cls, v: Any) -> str:
        return str(v).strip() if v is not None else "1"


class RecipeIngredientRead(BaseModel):
    product_name: str
    estimated_quantity: float
    unit: str
    total_amount: Optional[str] = None


class RejectedIngredientRead(BaseModel):
    index: int
    fields: List[str]
    message: str


class RecipeRead(BaseModel):
    id: UUID
    food_bank_id: UUID
    name: str
    servings: str
    created_at: Optional[datetime] = None
    ingredients: List[RecipeIngredientRead]


class RecipeCreateResult(BaseModel):
    recipe: RecipeRead
    rejected_ingredients: List[RejectedIngredientRead] = Field(default_factory=list)
