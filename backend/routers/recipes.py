from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_food_bank, ensure_owner
from core.errors import InvalidInput, NotFound
from db.database import get_async_session
from db.recipe import Recipe as RecipeModel
from db.recipe_ingredient import RecipeIngredient as RecipeIngredientModel
from schemas.recipes import RecipeCreate, RecipeCreateResult, RecipeRead
from services.resolver import parse_ingredients

router = APIRouter()


@router.get("/", response_model=List[RecipeRead])
async def list_recipes(
    db: AsyncSession = Depends(get_async_session),
    food_bank_id: UUID = Depends(current_food_bank),
):
    result = await db.execute(
        select(RecipeModel)
        .where(RecipeModel.food_bank_id == food_bank_id)
        .order_by(RecipeModel.created_at.desc())
    )
    return [r.to_schema for r in result.scalars().all()]


@router.get("/{recipe_id}", response_model=RecipeRead)
async def get_recipe(
    recipe_id: UUID,
    db: AsyncSession = Depends(get_async_session),
    food_bank_id: UUID = Depends(current_food_bank),
):
    recipe = await db.get(RecipeModel, recipe_id)
    if recipe is None:
        raise NotFound(f"Recipe {recipe_id} not found", field="recipe_id")
    ensure_owner(recipe.food_bank_id, food_bank_id, "recipe")
    return recipe.to_schema


@router.post("/", response_model=RecipeCreateResult, status_code=status.HTTP_201_CREATED)
async def create_recipe(
    payload: RecipeCreate,
    db: AsyncSession = Depends(get_async_session),
    food_bank_id: UUID = Depends(current_food_bank),
):
    """Store a generator recipe; malformed ingredient entries are reported back, not stored."""
    valid, rejected = parse_ingredients(payload.ingredients)
    if not valid:
        raise InvalidInput("Recipe has no usable ingredients", field="ingredients")

    recipe = RecipeModel(
        food_bank_id=food_bank_id,
        name=payload.name,
        servings=payload.servings or "1",
        ingredients=[
            RecipeIngredientModel(
                product_name=ing.product_name,
                estimated_quantity=ing.estimated_quantity,
                unit=ing.unit,
                total_amount=ing.total_amount,
                sort_order=idx,
            )
            for idx, ing in enumerate(valid)
        ],
    )
    db.add(recipe)
    await db.commit()

    return {
        "recipe": recipe.to_schema,
        "rejected_ingredients": [
            {"index": r.index, "fields": list(r.fields), "message": r.message}
            for r in rejected
        ],
    }
