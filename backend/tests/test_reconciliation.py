"""
Completion of a distribution session: deductions, variance and atomicity.

Each test runs against a fresh in-memory database through DistributionService.
"""
import uuid

import pytest
from sqlalchemy.orm.exc import StaleDataError

from core.errors import InvalidRange, InvalidState, ReconciliationFailed
from core.config import settings
from db.distribution import SESSION_COMPLETED
from services import reconciliation
from services.reconciliation import quantity_needed, variance_percentage
from services.resolver import ResolvedIngredient


async def _start(service, food_bank_id, recipe, initial=50):
    resolved = await service.resolve_for_start(food_bank_id, recipe)
    return await service.start(
        food_bank_id=food_bank_id,
        recipe_id=recipe.id,
        recipe_name=recipe.name,
        planned_servings=recipe.servings,
        resolved=resolved,
        initial_meal_count=initial,
    )


# ============================================================================
# Pure arithmetic
# ============================================================================

class TestArithmetic:
    @pytest.mark.parametrize(
        "expected,distributed,planned,needed",
        [
            (10, 40, 50, 8),
            (2, 40, 50, 2),   # ceil(1.6)
            (7, 1, 3, 3),     # ceil(2.33)
            (0.3, 10, 1, 3),  # no float drift
            (10, 0, 50, 0),
            (10, 50, 50, 10),
            (4, 10, 0, 40),   # planned batch of 0 is treated as 1
        ],
    )
    def test_quantity_needed_rounds_up(self, expected, distributed, planned, needed):
        assert quantity_needed(expected, distributed, planned) == needed

    def test_variance_percentage(self):
        assert variance_percentage(3, 10) == pytest.approx(30.0)

    def test_variance_percentage_with_zero_expected(self):
        assert variance_percentage(3, 0) == 0.0


# ============================================================================
# Completion scenarios
# ============================================================================

class TestComplete:
    async def test_full_stock_deducts_exact_need(self, service, food_bank_id, make_item, make_recipe, get_item, list_movements):
        """100 in stock, 40 of 50 meals served -> 8 deducted, no variance."""
        pasta = await make_item(food_bank_id, "Whole Wheat Pasta", 100)
        recipe = await make_recipe(food_bank_id, "Pasta Bake", "50 people", [("Whole Wheat Pasta", 10, "box")])
        session = await _start(service, food_bank_id, recipe, initial=50)

        result = await service.complete(session.id, 10)

        assert result.distributed_meal_count == 40
        assert result.usage_ratio == pytest.approx(0.8)
        assert result.has_variance is False
        assert result.warnings == []
        [usage] = result.session.ingredient_usage
        assert usage.actual_quantity == 8
        assert usage.deducted_from_inventory is True
        assert usage.deducted_quantity == 8
        assert usage.variance == 0
        assert usage.variance_percentage == 0.0
        assert usage.deducted_at is not None

        [deduction] = result.deductions
        assert (deduction.quantity_before, deduction.quantity_after, deduction.amount) == (100, 92, 8)

        item = await get_item(pasta.id)
        assert item.quantity == 92
        assert item.distributed_quantity == 8

        movements = await list_movements(food_bank_id, pasta.id)
        assert [(m.reason, m.change) for m in movements] == [("INTAKE", 100), ("DISTRIBUTION", -8)]
        assert movements[1].source_session_id == session.id

        stored = await service.get(session.id)
        assert stored.status == SESSION_COMPLETED
        assert stored.final_meal_count == 10
        assert stored.distributed_meal_count == 40
        assert stored.completed_at is not None

    async def test_shortfall_clamps_at_zero_and_records_variance(self, service, food_bank_id, make_item, make_recipe, get_item):
        """Only 5 in stock for a need of 8 -> 5 deducted, variance 3 (30%)."""
        pasta = await make_item(food_bank_id, "Whole Wheat Pasta", 5)
        recipe = await make_recipe(food_bank_id, "Pasta Bake", "50 people", [("Whole Wheat Pasta", 10, "box")])
        session = await _start(service, food_bank_id, recipe, initial=50)

        result = await service.complete(session.id, 10)

        [usage] = result.session.ingredient_usage
        assert usage.actual_quantity == 8
        assert usage.deducted_quantity == 5
        assert usage.variance == 3
        assert usage.variance_percentage == pytest.approx(30.0)
        assert result.has_variance is True
        assert (await get_item(pasta.id)).quantity == 0
        assert (await service.get(session.id)).has_variance is True

    async def test_unmatched_ingredient_is_recorded_but_not_deducted(self, service, food_bank_id, make_item, make_recipe, get_item):
        pasta = await make_item(food_bank_id, "Whole Wheat Pasta", 100)
        recipe = await make_recipe(
            food_bank_id, "Pasta Bake", "50 people",
            [("Whole Wheat Pasta", 10, "box"), ("Fresh Basil", 2, "bunch")],
        )
        session = await _start(service, food_bank_id, recipe, initial=50)

        result = await service.complete(session.id, 10)

        basil = result.session.ingredient_usage[1]
        assert basil.product_name == "Fresh Basil"
        assert basil.inventory_item_id is None
        assert basil.actual_quantity == 2
        assert basil.deducted_from_inventory is False
        assert basil.deducted_quantity == 0
        assert basil.variance == 0
        assert result.has_variance is False
        assert len(result.deductions) == 1
        assert (await get_item(pasta.id)).quantity == 92

    async def test_missing_inventory_item_is_skipped(self, service, food_bank_id, make_item, get_item):
        rice = await make_item(food_bank_id, "Rice", 30)
        session = await service.start(
            food_bank_id=food_bank_id,
            recipe_id=uuid.uuid4(),
            recipe_name="Rice Bowl",
            planned_servings="10",
            resolved=[
                ResolvedIngredient("Rice", 5, "bag", inventory_item_id=rice.id),
                ResolvedIngredient("Beans", 5, "can", inventory_item_id=uuid.uuid4()),
            ],
            initial_meal_count=10,
        )

        result = await service.complete(session.id, 0)

        rice_usage, beans_usage = result.session.ingredient_usage
        assert rice_usage.deducted_quantity == 5
        assert beans_usage.actual_quantity == 5
        assert beans_usage.deducted_from_inventory is False
        assert (await get_item(rice.id)).quantity == 25

    async def test_item_of_another_food_bank_is_not_touched(self, service, food_bank_id, make_item, get_item):
        foreign = await make_item(uuid.uuid4(), "Rice", 30)
        session = await service.start(
            food_bank_id=food_bank_id,
            recipe_id=uuid.uuid4(),
            recipe_name="Rice Bowl",
            planned_servings="10",
            resolved=[ResolvedIngredient("Rice", 5, "bag", inventory_item_id=foreign.id)],
            initial_meal_count=10,
        )

        result = await service.complete(session.id, 0)

        assert result.deductions == []
        assert (await get_item(foreign.id)).quantity == 30

    async def test_same_item_for_two_ingredients_deducts_cumulatively(self, service, food_bank_id, make_item, get_item):
        pasta = await make_item(food_bank_id, "Pasta", 12)
        session = await service.start(
            food_bank_id=food_bank_id,
            recipe_id=uuid.uuid4(),
            recipe_name="Double Pasta",
            planned_servings="10",
            resolved=[
                ResolvedIngredient("Pasta", 10, "box", inventory_item_id=pasta.id),
                ResolvedIngredient("Pasta", 10, "box", inventory_item_id=pasta.id),
            ],
            initial_meal_count=10,
        )

        result = await service.complete(session.id, 0)

        first, second = result.session.ingredient_usage
        assert (first.deducted_quantity, first.variance) == (10, 0)
        assert (second.deducted_quantity, second.variance) == (2, 8)
        assert (await get_item(pasta.id)).quantity == 0

    async def test_zero_expected_quantity_has_zero_variance_percentage(self, service, food_bank_id, make_item, get_item):
        salt = await make_item(food_bank_id, "Salt", 3)
        session = await service.start(
            food_bank_id=food_bank_id,
            recipe_id=uuid.uuid4(),
            recipe_name="Plain",
            planned_servings="10",
            resolved=[ResolvedIngredient("Salt", 0, "box", inventory_item_id=salt.id)],
            initial_meal_count=10,
        )

        result = await service.complete(session.id, 0)

        [usage] = result.session.ingredient_usage
        assert usage.actual_quantity == 0
        assert usage.variance_percentage == 0.0
        assert (await get_item(salt.id)).quantity == 3

    async def test_nothing_distributed_deducts_nothing(self, service, food_bank_id, make_item, make_recipe, get_item):
        pasta = await make_item(food_bank_id, "Whole Wheat Pasta", 100)
        recipe = await make_recipe(food_bank_id, "Pasta Bake", "50 people", [("Whole Wheat Pasta", 10, "box")])
        session = await _start(service, food_bank_id, recipe, initial=50)

        result = await service.complete(session.id, 50)

        assert result.distributed_meal_count == 0
        assert result.deductions == []
        assert (await get_item(pasta.id)).quantity == 100


# ============================================================================
# Rejections
# ============================================================================

class TestCompleteRejections:
    @pytest.mark.parametrize("final", [-1, 51])
    async def test_final_count_out_of_range(self, service, food_bank_id, make_item, make_recipe, get_item, final):
        pasta = await make_item(food_bank_id, "Whole Wheat Pasta", 100)
        recipe = await make_recipe(food_bank_id, "Pasta Bake", "50 people", [("Whole Wheat Pasta", 10, "box")])
        session = await _start(service, food_bank_id, recipe, initial=50)

        with pytest.raises(InvalidRange) as exc:
            await service.complete(session.id, final)

        assert exc.value.field == "final_meal_count"
        assert (await get_item(pasta.id)).quantity == 100
        assert (await service.get(session.id)).is_active

    async def test_completing_twice_fails_without_mutation(self, service, food_bank_id, make_item, make_recipe, get_item, list_movements):
        pasta = await make_item(food_bank_id, "Whole Wheat Pasta", 100)
        recipe = await make_recipe(food_bank_id, "Pasta Bake", "50 people", [("Whole Wheat Pasta", 10, "box")])
        session = await _start(service, food_bank_id, recipe, initial=50)
        await service.complete(session.id, 10)

        with pytest.raises(InvalidState):
            await service.complete(session.id, 0)

        assert (await get_item(pasta.id)).quantity == 92
        assert len(await list_movements(food_bank_id, pasta.id)) == 2

    async def test_completing_cancelled_session_fails(self, service, food_bank_id, make_item, make_recipe, get_item):
        pasta = await make_item(food_bank_id, "Whole Wheat Pasta", 100)
        recipe = await make_recipe(food_bank_id, "Pasta Bake", "50 people", [("Whole Wheat Pasta", 10, "box")])
        session = await _start(service, food_bank_id, recipe, initial=50)
        await service.cancel(session.id)

        with pytest.raises(InvalidState):
            await service.complete(session.id, 10)

        assert (await get_item(pasta.id)).quantity == 100


# ============================================================================
# Retries and atomicity
# ============================================================================

class TestRetries:
    async def test_conflict_on_first_attempt_is_retried_from_scratch(
        self, service, food_bank_id, make_item, make_recipe, get_item, list_movements, monkeypatch,
    ):
        monkeypatch.setattr(settings, "txn_retry_backoff_ms", 0)
        pasta = await make_item(food_bank_id, "Whole Wheat Pasta", 100)
        recipe = await make_recipe(food_bank_id, "Pasta Bake", "50 people", [("Whole Wheat Pasta", 10, "box")])
        session = await _start(service, food_bank_id, recipe, initial=50)

        real = reconciliation._deduct_all
        calls = []

        async def flaky(db, *args, **kwargs):
            calls.append(1)
            out = await real(db, *args, **kwargs)
            if len(calls) == 1:
                raise StaleDataError("row changed underneath us")
            return out

        monkeypatch.setattr(reconciliation, "_deduct_all", flaky)

        result = await service.complete(session.id, 10)

        assert len(calls) == 2
        assert result.deductions[0].quantity_before == 100
        # first attempt's deduction was rolled back
        assert (await get_item(pasta.id)).quantity == 92
        assert [m.reason for m in await list_movements(food_bank_id, pasta.id)] == ["INTAKE", "DISTRIBUTION"]

    async def test_exhausted_retries_fail_without_partial_state(
        self, service, food_bank_id, make_item, make_recipe, get_item, monkeypatch,
    ):
        monkeypatch.setattr(settings, "txn_retry_backoff_ms", 0)
        pasta = await make_item(food_bank_id, "Whole Wheat Pasta", 100)
        recipe = await make_recipe(food_bank_id, "Pasta Bake", "50 people", [("Whole Wheat Pasta", 10, "box")])
        session = await _start(service, food_bank_id, recipe, initial=50)

        real = reconciliation._deduct_all

        async def always_conflicts(db, *args, **kwargs):
            await real(db, *args, **kwargs)
            raise StaleDataError("row changed underneath us")

        monkeypatch.setattr(reconciliation, "_deduct_all", always_conflicts)

        with pytest.raises(ReconciliationFailed) as exc:
            await service.complete(session.id, 10)

        assert exc.value.attempts == settings.txn_max_attempts
        assert (await get_item(pasta.id)).quantity == 100
        stored = await service.get(session.id)
        assert stored.is_active
        assert stored.ingredient_usage[0].deducted_quantity == 0
