from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.auth import current_actor, current_food_bank, ensure_owner
from core.converters import preview_to_dict, result_to_dict, session_to_dict, usage_preview_to_dict
from db.database import get_session_maker
from db.distribution import DistributionSession
from schemas.distribution import (
    DistributionCancelRequest,
    DistributionCompleteRead,
    DistributionCompleteRequest,
    DistributionLogRead,
    DistributionPreviewRead,
    DistributionPreviewRequest,
    DistributionSessionRead,
    DistributionStartRequest,
    MealCountRequest,
    UsagePreviewRead,
)
from services.resolver import ResolvedIngredient
from services.sessions import DistributionService, preview_usage

router = APIRouter()


def get_distribution_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> DistributionService:
    return DistributionService(session_maker)


async def _owned_session(service: DistributionService, session_id: UUID, food_bank_id: UUID) -> DistributionSession:
    session = await service.get(session_id)
    ensure_owner(session.food_bank_id, food_bank_id, "distribution session")
    return session


@router.post("/preview", response_model=DistributionPreviewRead)
async def preview_distribution(
    payload: DistributionPreviewRequest,
    food_bank_id: UUID = Depends(current_food_bank),
    service: DistributionService = Depends(get_distribution_service),
):
    """Resolve the recipe against current stock; nothing is written."""
    recipe = await service.get_recipe(payload.recipe_id)
    ensure_owner(recipe.food_bank_id, food_bank_id, "recipe")
    preview = await service.preview(food_bank_id, recipe, payload.threshold)
    return preview_to_dict(preview)


@router.post("/", response_model=DistributionSessionRead, status_code=status.HTTP_201_CREATED)
async def start_distribution(
    payload: DistributionStartRequest,
    food_bank_id: UUID = Depends(current_food_bank),
    actor: Optional[str] = Depends(current_actor),
    service: DistributionService = Depends(get_distribution_service),
):
    recipe = await service.get_recipe(payload.recipe_id)
    ensure_owner(recipe.food_bank_id, food_bank_id, "recipe")

    if payload.ingredients is not None:
        # Operator reviewed the preview and may have re-bound ingredients by hand
        resolved = [
            ResolvedIngredient(
                product_name=ing.product_name,
                estimated_quantity=ing.estimated_quantity,
                unit=ing.unit,
                total_amount=ing.total_amount,
                inventory_item_id=ing.inventory_item_id,
                barcode=ing.barcode,
                confidence=1.0 if ing.inventory_item_id else 0.0,
            )
            for ing in payload.ingredients
        ]
    else:
        resolved = await service.resolve_for_start(food_bank_id, recipe, payload.threshold)

    session = await service.start(
        food_bank_id=food_bank_id,
        recipe_id=recipe.id,
        recipe_name=recipe.name,
        planned_servings=recipe.servings,
        resolved=resolved,
        initial_meal_count=payload.initial_meal_count,
        started_by=actor,
        started_by_name=payload.started_by_name,
    )
    return session_to_dict(session)


@router.get("/", response_model=List[DistributionSessionRead])
async def list_distributions(
    status_filter: Optional[str] = Query(None, alias="status"),
    food_bank_id: UUID = Depends(current_food_bank),
    service: DistributionService = Depends(get_distribution_service),
):
    sessions = await service.list_sessions(food_bank_id, status_filter)
    return [session_to_dict(s) for s in sessions]


@router.get("/stale", response_model=List[DistributionSessionRead])
async def list_stale_distributions(
    older_than_hours: Optional[int] = Query(None, ge=0),
    food_bank_id: UUID = Depends(current_food_bank),
    service: DistributionService = Depends(get_distribution_service),
):
    older_than = timedelta(hours=older_than_hours) if older_than_hours is not None else None
    sessions = await service.list_stale_sessions(food_bank_id, older_than)
    return [session_to_dict(s) for s in sessions]


@router.get("/{session_id}", response_model=DistributionSessionRead)
async def get_distribution(
    session_id: UUID,
    food_bank_id: UUID = Depends(current_food_bank),
    service: DistributionService = Depends(get_distribution_service),
):
    session = await _owned_session(service, session_id, food_bank_id)
    return session_to_dict(session)


@router.get("/{session_id}/usage-preview", response_model=List[UsagePreviewRead])
async def preview_distribution_usage(
    session_id: UUID,
    final_meal_count: Optional[int] = Query(None),
    food_bank_id: UUID = Depends(current_food_bank),
    service: DistributionService = Depends(get_distribution_service),
):
    session = await _owned_session(service, session_id, food_bank_id)
    return usage_preview_to_dict(preview_usage(session, final_meal_count))


@router.patch("/{session_id}/initial-count", response_model=DistributionSessionRead)
async def set_initial_count(
    session_id: UUID,
    payload: MealCountRequest,
    food_bank_id: UUID = Depends(current_food_bank),
    actor: Optional[str] = Depends(current_actor),
    service: DistributionService = Depends(get_distribution_service),
):
    await _owned_session(service, session_id, food_bank_id)
    session = await service.set_initial_count(session_id, payload.count, performed_by=actor)
    return session_to_dict(session)


@router.patch("/{session_id}/final-count", response_model=DistributionSessionRead)
async def record_final_count(
    session_id: UUID,
    payload: MealCountRequest,
    food_bank_id: UUID = Depends(current_food_bank),
    service: DistributionService = Depends(get_distribution_service),
):
    await _owned_session(service, session_id, food_bank_id)
    session = await service.record_final_count(session_id, payload.count)
    return session_to_dict(session)


@router.post("/{session_id}/complete", response_model=DistributionCompleteRead)
async def complete_distribution(
    session_id: UUID,
    payload: DistributionCompleteRequest,
    food_bank_id: UUID = Depends(current_food_bank),
    actor: Optional[str] = Depends(current_actor),
    service: DistributionService = Depends(get_distribution_service),
):
    await _owned_session(service, session_id, food_bank_id)
    result = await service.complete(
        session_id,
        payload.final_meal_count,
        performed_by=actor,
        performed_by_name=payload.performed_by_name,
    )
    return result_to_dict(result)


@router.post("/{session_id}/cancel", response_model=DistributionSessionRead)
async def cancel_distribution(
    session_id: UUID,
    payload: Optional[DistributionCancelRequest] = None,
    food_bank_id: UUID = Depends(current_food_bank),
    actor: Optional[str] = Depends(current_actor),
    service: DistributionService = Depends(get_distribution_service),
):
    await _owned_session(service, session_id, food_bank_id)
    session = await service.cancel(
        session_id,
        performed_by=actor,
        performed_by_name=payload.performed_by_name if payload else None,
    )
    return session_to_dict(session)


@router.get("/{session_id}/logs", response_model=List[DistributionLogRead])
async def list_distribution_logs(
    session_id: UUID,
    food_bank_id: UUID = Depends(current_food_bank),
    service: DistributionService = Depends(get_distribution_service),
):
    await _owned_session(service, session_id, food_bank_id)
    logs = await service.list_logs(session_id)
    return [entry.to_schema for entry in logs]
