"""
Lifecycle of a distribution session.

    start() ──> active ──complete()──> completed
                   │
                   └────cancel()───> cancelled

Sessions are created already active; resolution and the suggested starting
count are computed beforehand and only become durable in ``start``. Both
terminal states reject any further ``complete``/``cancel`` with InvalidState.
Cancelling never touches inventory.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from fractions import Fraction
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import settings
from core.errors import ActiveSessionExists, InvalidInput, InvalidRange, NotFound
from db.database import async_session_maker, utcnow
from db.distribution import (
    DistributionSession,
    IngredientUsage,
    SESSION_ACTIVE,
    SESSION_CANCELLED,
    SESSION_STATUSES,
)
from db.distribution_log import DistributionLog
from db.recipe import Recipe
from services import audit_log
from services.audit_log import AuditLogWriter, SqlLogSink
from services.inventory import load_inventory
from services.reconciliation import (
    ReconciliationResult,
    ensure_active,
    load_session,
    quantity_needed,
    reconcile,
    validate_final_count,
)
from services.resolver import (
    Availability,
    RecipeIngredient,
    ResolvedIngredient,
    available_quantity,
    check_availability,
    parse_planned_servings,
    resolve_all,
)
from services.transactions import run_in_transaction

logger = logging.getLogger(__name__)


@dataclass
class SetupPreview:
    recipe: Recipe
    planned_batch: int
    resolved: List[ResolvedIngredient]
    availability: List[tuple]  # (ResolvedIngredient, Availability)
    suggested_initial_count: int
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class UsagePreview:
    product_name: str
    inventory_item_id: Optional[UUID]
    expected_quantity: float
    expected_unit: str
    actual_quantity_needed: int


def suggest_initial_count(
    resolved: Sequence[ResolvedIngredient],
    inventory: Sequence[Any],
    planned_servings,
) -> int:
    """Meals the current stock can cover: floor(min(available / needed) * planned batch)."""
    by_id: Dict[Any, Any] = {item.id: item for item in inventory}
    planned = parse_planned_servings(planned_servings)

    min_ratio: Optional[Fraction] = None
    for ingredient in resolved:
        if ingredient.inventory_item_id is None:
            continue
        item = by_id.get(ingredient.inventory_item_id)
        if item is None:
            continue
        needed = Fraction(str(ingredient.estimated_quantity or 0))
        if needed <= 0:
            continue
        ratio = Fraction(available_quantity(item)) / needed
        if min_ratio is None or ratio < min_ratio:
            min_ratio = ratio

    if min_ratio is None or min_ratio <= 0:
        return 0
    return math.floor(min_ratio * planned)


def build_usage(resolved: Sequence[ResolvedIngredient]) -> List[IngredientUsage]:
    # expected_quantity is the batch amount verbatim; scaling happens at completion
    return [
        IngredientUsage(
            position=pos,
            product_name=ing.product_name,
            inventory_item_id=ing.inventory_item_id,
            barcode=ing.barcode,
            expected_quantity=float(ing.estimated_quantity),
            expected_unit=ing.unit,
            total_amount=ing.total_amount,
            deducted_from_inventory=False,
            deducted_quantity=0,
            variance=0,
            variance_percentage=0.0,
        )
        for pos, ing in enumerate(resolved)
    ]


def preview_usage(session: DistributionSession, final_meal_count: Optional[int] = None) -> List[UsagePreview]:
    """What completion would try to deduct, without touching inventory."""
    if final_meal_count is None:
        final = session.final_meal_count
    else:
        final = validate_final_count(session, final_meal_count)
    distributed = int(session.initial_meal_count) - int(final or 0)
    planned = parse_planned_servings(session.planned_servings)
    return [
        UsagePreview(
            product_name=u.product_name,
            inventory_item_id=u.inventory_item_id,
            expected_quantity=float(u.expected_quantity),
            expected_unit=u.expected_unit,
            actual_quantity_needed=quantity_needed(u.expected_quantity, distributed, planned),
        )
        for u in session.ingredient_usage
    ]


def recipe_ingredients(recipe: Recipe) -> List[RecipeIngredient]:
    return [
        RecipeIngredient(
            product_name=ri.product_name,
            estimated_quantity=float(ri.estimated_quantity),
            unit=ri.unit,
            total_amount=ri.total_amount,
        )
        for ri in recipe.ingredients
    ]


class DistributionService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
        audit: Optional[AuditLogWriter] = None,
        *,
        max_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_maker = session_maker
        self._audit = audit or AuditLogWriter(SqlLogSink(session_maker), clock)
        self._max_attempts = max_attempts
        self._clock = clock

    # --- setup (read-only) ---------------------------------------------------

    async def get_recipe(self, recipe_id: UUID) -> Recipe:
        async with self._session_maker() as db:
            recipe = await db.get(Recipe, recipe_id)
        if recipe is None:
            raise NotFound(f"Recipe {recipe_id} not found", field="recipe_id")
        return recipe

    async def preview(self, food_bank_id: UUID, recipe: Recipe, threshold: Optional[float] = None) -> SetupPreview:
        async with self._session_maker() as db:
            inventory = await load_inventory(db, food_bank_id)

        resolved = resolve_all(recipe_ingredients(recipe), inventory, threshold)
        by_id = {item.id: item for item in inventory}

        availability: List[tuple] = []
        warnings: List[str] = []
        for ing in resolved:
            if not ing.is_bound:
                warnings.append(f"No inventory match for '{ing.product_name}'; it will not be deducted")
                continue
            item = by_id[ing.inventory_item_id]
            check: Availability = check_availability(ing, item)
            availability.append((ing, check))
            if not check.is_valid:
                warnings.append(
                    f"Only {check.available} available for '{ing.product_name}', recipe needs {check.needed:g}"
                )

        return SetupPreview(
            recipe=recipe,
            planned_batch=parse_planned_servings(recipe.servings),
            resolved=resolved,
            availability=availability,
            suggested_initial_count=suggest_initial_count(resolved, inventory, recipe.servings),
            warnings=warnings,
        )

    async def resolve_for_start(self, food_bank_id: UUID, recipe: Recipe, threshold: Optional[float] = None) -> List[ResolvedIngredient]:
        async with self._session_maker() as db:
            inventory = await load_inventory(db, food_bank_id)
        return resolve_all(recipe_ingredients(recipe), inventory, threshold)

    # --- transitions ---------------------------------------------------------

    async def start(
        self,
        *,
        food_bank_id: UUID,
        recipe_id: UUID,
        recipe_name: str,
        planned_servings: str,
        resolved: Sequence[ResolvedIngredient],
        initial_meal_count: int,
        started_by: Optional[str] = None,
        started_by_name: Optional[str] = None,
    ) -> DistributionSession:
        if isinstance(initial_meal_count, bool) or not isinstance(initial_meal_count, int) or initial_meal_count <= 0:
            raise InvalidInput("initial_meal_count must be a positive whole number", field="initial_meal_count")
        if not (recipe_name or "").strip():
            raise InvalidInput("recipe_name is required", field="recipe_name")
        if not resolved:
            raise InvalidInput("A distribution needs at least one ingredient", field="ingredients")

        async def body(db: AsyncSession) -> DistributionSession:
            existing = await db.execute(
                select(DistributionSession.id)
                .where(DistributionSession.food_bank_id == food_bank_id)
                .where(DistributionSession.recipe_id == recipe_id)
                .where(DistributionSession.status == SESSION_ACTIVE)
            )
            if existing.first() is not None:
                raise ActiveSessionExists(
                    "This recipe already has an active distribution; complete or cancel it first",
                    field="recipe_id",
                )
            session = DistributionSession(
                food_bank_id=food_bank_id,
                recipe_id=recipe_id,
                recipe_name=recipe_name.strip(),
                planned_servings=str(planned_servings or "1"),
                status=SESSION_ACTIVE,
                initial_meal_count=initial_meal_count,
                has_variance=False,
                started_by=started_by,
                started_by_name=started_by_name,
                started_at=self._clock(),
                ingredient_usage=build_usage(resolved),
            )
            db.add(session)
            try:
                await db.flush()
            except IntegrityError as exc:
                raise ActiveSessionExists(
                    "This recipe already has an active distribution; complete or cancel it first",
                    field="recipe_id",
                ) from exc
            return session

        session = await run_in_transaction(self._session_maker, body, max_attempts=self._max_attempts, label="start distribution")
        logger.info(
            "Session %s started for recipe %s with %d meals (%d ingredients, %d bound)",
            session.id, recipe_id, initial_meal_count, len(resolved), sum(1 for r in resolved if r.is_bound),
        )
        await self._audit.session_started(session, performed_by=started_by, performed_by_name=started_by_name)
        return session

    async def set_initial_count(
        self,
        session_id: UUID,
        count: int,
        *,
        performed_by: Optional[str] = None,
        performed_by_name: Optional[str] = None,
    ) -> DistributionSession:
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise InvalidInput("initial_meal_count must be a positive whole number", field="initial_meal_count")

        async def body(db: AsyncSession) -> DistributionSession:
            session = await load_session(db, session_id, for_update=True)
            ensure_active(session)
            if session.final_meal_count is not None and count < session.final_meal_count:
                raise InvalidRange(
                    f"initial_meal_count cannot be below the recorded final count ({session.final_meal_count})",
                    field="initial_meal_count",
                )
            session.initial_meal_count = count
            if session.final_meal_count is not None:
                session.distributed_meal_count = count - session.final_meal_count
            await db.flush()
            return session

        session = await run_in_transaction(self._session_maker, body, max_attempts=self._max_attempts, label="set initial count")
        await self._audit.initial_count_set(session, performed_by=performed_by, performed_by_name=performed_by_name)
        return session

    async def record_final_count(self, session_id: UUID, count: int) -> DistributionSession:
        """Provisional count for the confirm step; inventory is untouched until complete()."""
        async def body(db: AsyncSession) -> DistributionSession:
            session = await load_session(db, session_id, for_update=True)
            ensure_active(session)
            final = validate_final_count(session, count)
            session.final_meal_count = final
            session.distributed_meal_count = int(session.initial_meal_count) - final
            await db.flush()
            return session

        return await run_in_transaction(self._session_maker, body, max_attempts=self._max_attempts, label="record final count")

    async def complete(
        self,
        session_id: UUID,
        final_meal_count: int,
        *,
        performed_by: Optional[str] = None,
        performed_by_name: Optional[str] = None,
    ) -> ReconciliationResult:
        return await reconcile(
            self._session_maker,
            session_id,
            final_meal_count,
            audit=self._audit,
            performed_by=performed_by,
            performed_by_name=performed_by_name,
            max_attempts=self._max_attempts,
            clock=self._clock,
        )

    async def cancel(
        self,
        session_id: UUID,
        *,
        performed_by: Optional[str] = None,
        performed_by_name: Optional[str] = None,
    ) -> DistributionSession:
        async def body(db: AsyncSession) -> DistributionSession:
            session = await load_session(db, session_id, for_update=True)
            ensure_active(session)
            session.status = SESSION_CANCELLED
            session.cancelled_at = self._clock()
            session.cancelled_by = performed_by
            await db.flush()
            return session

        session = await run_in_transaction(self._session_maker, body, max_attempts=self._max_attempts, label="cancel distribution")
        logger.info("Session %s cancelled", session.id)
        await self._audit.session_cancelled(session, performed_by=performed_by, performed_by_name=performed_by_name)
        return session

    # --- queries -------------------------------------------------------------

    async def get(self, session_id: UUID) -> DistributionSession:
        async with self._session_maker() as db:
            return await load_session(db, session_id)

    async def list_sessions(self, food_bank_id: UUID, status: Optional[str] = None) -> List[DistributionSession]:
        if status is not None and status not in SESSION_STATUSES:
            raise InvalidInput(f"Unknown status: {status}", field="status")
        stmt = select(DistributionSession).where(DistributionSession.food_bank_id == food_bank_id)
        if status is not None:
            stmt = stmt.where(DistributionSession.status == status)
        stmt = stmt.order_by(DistributionSession.started_at.desc())
        async with self._session_maker() as db:
            res = await db.execute(stmt)
            return list(res.scalars().all())

    async def list_stale_sessions(self, food_bank_id: UUID, older_than: Optional[timedelta] = None) -> List[DistributionSession]:
        """Active sessions nobody closed; reported, never expired automatically."""
        age = older_than if older_than is not None else timedelta(hours=settings.stale_session_hours)
        cutoff = self._clock() - age
        async with self._session_maker() as db:
            res = await db.execute(
                select(DistributionSession)
                .where(DistributionSession.food_bank_id == food_bank_id)
                .where(DistributionSession.status == SESSION_ACTIVE)
                .where(DistributionSession.started_at < cutoff)
                .order_by(DistributionSession.started_at.asc())
            )
            return list(res.scalars().all())

    async def list_logs(self, session_id: UUID) -> List[DistributionLog]:
        async with self._session_maker() as db:
            return await audit_log.list_logs(db, session_id)
