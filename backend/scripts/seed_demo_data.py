import asyncio
import logging
import os
import sys
import uuid
from pathlib import Path

"""
Seed a demo food bank (inventory plus one stored recipe).

This script can be run from either:
- backend/: `python scripts/seed_demo_data.py`
- repo root: `python backend/scripts/seed_demo_data.py`

The food bank id comes from DEMO_FOOD_BANK_ID; a fixed demo id is used otherwise.
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from sqlalchemy import func, select

from core.logging_config import configure_logging
from db.database import async_session_maker, create_db_and_tables
from db.inventory.item import InventoryItem
from db.recipe import Recipe
from db.recipe_ingredient import RecipeIngredient
from services.inventory import create_item
from services.resolver import parse_ingredients

logger = logging.getLogger("seed_demo_data")

DEMO_FOOD_BANK_ID = uuid.UUID(os.getenv("DEMO_FOOD_BANK_ID", "00000000-0000-4000-8000-000000000001"))

DEMO_INVENTORY = [
    # product_name, brand, barcode, unit, quantity
    ("Whole Wheat Pasta", "Barilla", "076808280739", "box", 100),
    ("Marinara Sauce", "Prego", "041565000135", "jar", 40),
    ("Canned Black Beans", "Goya", "041331024297", "can", 60),
    ("Shredded Cheddar", "Kraft", "021000613267", "bag", 12),
    ("Frozen Spinach", "Birds Eye", "014500008459", "bag", 25),
]

DEMO_RECIPE = {
    "name": "Baked Pasta with Beans",
    "servings": "50 people",
    "ingredients": [
        {"productName": "Whole Wheat Pasta", "estimatedQuantity": 10, "unit": "box", "totalAmount": "10 boxes"},
        {"productName": "Marinara Sauce", "estimatedQuantity": 8, "unit": "jar", "totalAmount": "8 jars"},
        {"productName": "Black Beans", "estimatedQuantity": 6, "unit": "can"},
        {"productName": "Cheddar", "estimatedQuantity": 4, "unit": "bag"},
        {"productName": "Fresh Basil", "estimatedQuantity": 2, "unit": "bunch"},
    ],
}


async def get_or_create_item(session, product_name: str, brand: str, barcode: str, unit: str, quantity: int) -> InventoryItem:
    result = await session.execute(
        select(InventoryItem)
        .where(InventoryItem.food_bank_id == DEMO_FOOD_BANK_ID)
        .where(func.lower(InventoryItem.product_name) == product_name.lower())
    )
    item = result.scalar_one_or_none()
    if item:
        return item
    return await create_item(
        session,
        food_bank_id=DEMO_FOOD_BANK_ID,
        product_name=product_name,
        brand=brand,
        barcode=barcode,
        unit=unit,
        quantity=quantity,
        created_by="seed",
    )


async def upsert_recipe(session, name: str, servings: str, raw_ingredients) -> Recipe:
    result = await session.execute(
        select(Recipe)
        .where(Recipe.food_bank_id == DEMO_FOOD_BANK_ID)
        .where(func.lower(Recipe.name) == name.lower())
    )
    recipe = result.scalar_one_or_none()
    if recipe:
        return recipe

    valid, rejected = parse_ingredients(raw_ingredients)
    for r in rejected:
        logger.warning("Skipping ingredient #%d: %s", r.index, r.message)

    recipe = Recipe(
        food_bank_id=DEMO_FOOD_BANK_ID,
        name=name,
        servings=servings,
        ingredients=[
            RecipeIngredient(
                product_name=ing.product_name,
                estimated_quantity=ing.estimated_quantity,
                unit=ing.unit,
                total_amount=ing.total_amount,
                sort_order=idx,
            )
            for idx, ing in enumerate(valid)
        ],
    )
    session.add(recipe)
    await session.flush()
    return recipe


async def seed() -> None:
    configure_logging()
    await create_db_and_tables()

    async with async_session_maker() as session:
        async with session.begin():
            for product_name, brand, barcode, unit, quantity in DEMO_INVENTORY:
                await get_or_create_item(session, product_name, brand, barcode, unit, quantity)
            recipe = await upsert_recipe(
                session, DEMO_RECIPE["name"], DEMO_RECIPE["servings"], DEMO_RECIPE["ingredients"]
            )

    logger.info("Seeded food bank %s with %d items and recipe %s", DEMO_FOOD_BANK_ID, len(DEMO_INVENTORY), recipe.id)


if __name__ == "__main__":
    asyncio.run(seed())
