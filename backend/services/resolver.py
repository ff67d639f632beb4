"""
Bind recipe ingredients to inventory records.

Everything here is read-only: the resolver only looks at the inventory
snapshot it is given, so it can be re-run against fresh snapshots as often
as the operator likes before a session starts.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from pydantic import ValidationError

from core.config import settings
from core.errors import InvalidInput
from schemas.recipes import RecipeIngredientIn
from services.matcher import DEFAULT_MATCHER, Matcher

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"^\s*(\d+)")


@dataclass(frozen=True)
class RecipeIngredient:
    product_name: str
    estimated_quantity: float  # containers per full recipe batch
    unit: str
    total_amount: Optional[str] = None


@dataclass(frozen=True)
class ResolvedIngredient:
    product_name: str
    estimated_quantity: float
    unit: str
    total_amount: Optional[str] = None
    inventory_item_id: Optional[UUID] = None
    barcode: Optional[str] = None
    confidence: float = 0.0

    @property
    def is_bound(self) -> bool:
        return self.inventory_item_id is not None

    @classmethod
    def unresolved(cls, ingredient: RecipeIngredient, confidence: float = 0.0) -> "ResolvedIngredient":
        return cls(
            product_name=ingredient.product_name,
            estimated_quantity=ingredient.estimated_quantity,
            unit=ingredient.unit,
            total_amount=ingredient.total_amount,
            confidence=confidence,
        )


@dataclass(frozen=True)
class RejectedIngredient:
    index: int
    fields: Tuple[str, ...]
    message: str
    raw: Any = None


@dataclass(frozen=True)
class Availability:
    is_valid: bool
    available: int
    needed: float


def parse_planned_servings(servings: Any) -> int:
    """Leading integer of a servings string ("200 people" -> 200); 1 when unusable."""
    if isinstance(servings, bool):
        return 1
    if isinstance(servings, int):
        return servings if servings > 0 else 1
    m = _LEADING_INT.match(str(servings or ""))
    if not m:
        return 1
    n = int(m.group(1))
    return n if n > 0 else 1


def parse_ingredients(raw: Iterable[Any]) -> Tuple[List[RecipeIngredient], List[RejectedIngredient]]:
    """Validate generator output entry by entry; malformed entries are set aside, not fatal."""
    valid: List[RecipeIngredient] = []
    rejected: List[RejectedIngredient] = []
    for idx, entry in enumerate(raw or []):
        try:
            parsed = RecipeIngredientIn.model_validate(entry)
        except ValidationError as exc:
            fields = tuple(sorted({".".join(str(p) for p in err["loc"]) or "entry" for err in exc.errors()}))
            rejected.append(
                RejectedIngredient(
                    index=idx,
                    fields=fields,
                    message="; ".join(err["msg"] for err in exc.errors()),
                    raw=entry,
                )
            )
            continue
        valid.append(
            RecipeIngredient(
                product_name=parsed.product_name,
                estimated_quantity=parsed.estimated_quantity,
                unit=parsed.unit,
                total_amount=parsed.total_amount,
            )
        )
    if rejected:
        logger.info("Rejected %d of %d recipe ingredients", len(rejected), len(rejected) + len(valid))
    return valid, rejected


def available_quantity(item: Any) -> int:
    quantity = int(getattr(item, "quantity", 0) or 0)
    reserved = int(getattr(item, "reserved_quantity", 0) or 0)
    return max(0, quantity - reserved)


def check_availability(ingredient: Any, item: Any) -> Availability:
    """Setup-time warning only; insufficient stock never blocks a session."""
    available = available_quantity(item)
    needed = float(getattr(ingredient, "estimated_quantity", 0) or 0)
    return Availability(is_valid=available >= needed, available=available, needed=needed)


def match_score(ingredient_name: str, item: Any, matcher: Matcher, brand_weight: float) -> float:
    name_score = matcher.score(ingredient_name, getattr(item, "product_name", "") or "")
    brand = getattr(item, "brand", None)
    brand_score = matcher.score(ingredient_name, brand) * brand_weight if brand else 0.0
    return name_score + brand_score


def best_match(
    ingredient: RecipeIngredient,
    inventory: Sequence[Any],
    threshold: float,
    matcher: Matcher = DEFAULT_MATCHER,
    brand_weight: Optional[float] = None,
) -> Tuple[Optional[Any], float]:
    weight = settings.brand_score_weight if brand_weight is None else brand_weight
    best = None
    best_score = 0.0
    for item in inventory:
        total = match_score(ingredient.product_name, item, matcher, weight)
        # strict '>' keeps the first item on ties
        if total > best_score:
            best, best_score = item, total
    if best is not None and best_score >= threshold:
        return best, best_score
    return None, best_score


def resolve_all(
    ingredients: Sequence[RecipeIngredient],
    inventory: Sequence[Any],
    threshold: Optional[float] = None,
    matcher: Matcher = DEFAULT_MATCHER,
    brand_weight: Optional[float] = None,
) -> List[ResolvedIngredient]:
    limit = settings.match_confidence_threshold if threshold is None else threshold
    if limit < 0:
        raise InvalidInput("threshold must not be negative", field="threshold")

    out: List[ResolvedIngredient] = []
    for ingredient in ingredients:
        item, score = best_match(ingredient, inventory, limit, matcher, brand_weight)
        resolved = ResolvedIngredient.unresolved(ingredient, confidence=score)
        if item is not None:
            resolved = replace(resolved, inventory_item_id=item.id, barcode=getattr(item, "barcode", None))
        out.append(resolved)
    return out
