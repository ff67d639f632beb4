"""
Test configuration and fixtures for the distribution backend test suite.

Provides:
- In-memory SQLite database (aiosqlite, isolated per test)
- A DistributionService bound to that database
- An httpx AsyncClient wired to the FastAPI app
- Factory fixtures for inventory items and recipes
"""
import os

# Must be set before anything imports core.config
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid
from typing import Iterable, Optional, Tuple

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db.database import create_db_and_tables, get_async_session, get_session_maker
from db.recipe import Recipe
from db.recipe_ingredient import RecipeIngredient
from services import inventory as inventory_service
from services.sessions import DistributionService


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
async def engine():
    """Fresh in-memory database per test; StaticPool keeps every session on one connection."""
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_db_and_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture()
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture()
def service(session_maker):
    return DistributionService(session_maker)


@pytest.fixture()
def food_bank_id():
    return uuid.uuid4()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture()
async def client(session_maker):
    """
    AsyncClient against the app with the database dependencies pointed at the test engine.

    ASGITransport does not run the lifespan, so the production engine is never touched.
    """
    from main import app

    async def _test_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = _test_session
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Factory fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def make_item(session_maker):
    """Create an inventory item through the intake path and return it."""
    async def _make(
        food_bank_id,
        product_name: str,
        quantity: int,
        *,
        brand: str = "",
        barcode: Optional[str] = None,
        unit: str = "container",
        reserved_quantity: int = 0,
    ):
        async with session_maker() as db:
            async with db.begin():
                item = await inventory_service.create_item(
                    db,
                    food_bank_id=food_bank_id,
                    product_name=product_name,
                    brand=brand,
                    barcode=barcode,
                    unit=unit,
                    quantity=quantity,
                    reserved_quantity=reserved_quantity,
                )
        return item

    return _make


@pytest.fixture()
def make_recipe(session_maker):
    """Create a stored recipe from (product_name, estimated_quantity, unit) tuples."""
    async def _make(food_bank_id, name: str, servings: str, ingredients: Iterable[Tuple[str, float, str]]):
        recipe = Recipe(
            food_bank_id=food_bank_id,
            name=name,
            servings=servings,
            ingredients=[
                RecipeIngredient(product_name=p, estimated_quantity=q, unit=u, sort_order=idx)
                for idx, (p, q, u) in enumerate(ingredients)
            ],
        )
        async with session_maker() as db:
            async with db.begin():
                db.add(recipe)
        return recipe

    return _make


@pytest.fixture()
def get_item(session_maker):
    """Re-read an inventory item from the database."""
    async def _get(item_id):
        async with session_maker() as db:
            return await inventory_service.get_item(db, item_id)

    return _get


@pytest.fixture()
def list_movements(session_maker):
    async def _list(food_bank_id, item_id=None):
        async with session_maker() as db:
            return await inventory_service.list_movements(db, food_bank_id, item_id)

    return _list
