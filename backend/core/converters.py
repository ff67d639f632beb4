from typing import Dict, List

from db.distribution import DistributionSession, IngredientUsage
from services.reconciliation import ReconciliationResult
from services.sessions import SetupPreview, UsagePreview


def usage_to_dict(usage: IngredientUsage) -> Dict:
    return {
        "product_name": usage.product_name,
        "inventory_item_id": usage.inventory_item_id,
        "barcode": usage.barcode,
        "expected_quantity": float(usage.expected_quantity),
        "expected_unit": usage.expected_unit,
        "total_amount": usage.total_amount,
        "actual_quantity": usage.actual_quantity,
        "deducted_from_inventory": bool(usage.deducted_from_inventory),
        "deducted_quantity": int(usage.deducted_quantity or 0),
        "deducted_at": usage.deducted_at,
        "variance": int(usage.variance or 0),
        "variance_percentage": float(usage.variance_percentage or 0.0),
    }


def session_to_dict(session: DistributionSession) -> Dict:
    """Convert a DistributionSession model (with its usage rows) to a response dict"""
    return {
        "id": session.id,
        "food_bank_id": session.food_bank_id,
        "recipe_id": session.recipe_id,
        "recipe_name": session.recipe_name,
        "planned_servings": session.planned_servings,
        "status": session.status,
        "initial_meal_count": int(session.initial_meal_count),
        "final_meal_count": session.final_meal_count,
        "distributed_meal_count": session.distributed_meal_count,
        "has_variance": bool(session.has_variance),
        "started_by": session.started_by,
        "started_by_name": session.started_by_name,
        "started_at": session.started_at,
        "completed_by": session.completed_by,
        "completed_at": session.completed_at,
        "cancelled_by": session.cancelled_by,
        "cancelled_at": session.cancelled_at,
        "ingredient_usage": [usage_to_dict(u) for u in session.ingredient_usage],
    }


def result_to_dict(result: ReconciliationResult) -> Dict:
    return {
        "session": session_to_dict(result.session),
        "deductions": [
            {
                "inventory_item_id": d.inventory_item_id,
                "product_name": d.product_name,
                "quantity_before": d.quantity_before,
                "quantity_after": d.quantity_after,
                "amount": d.amount,
                "actual_quantity_needed": d.actual_quantity_needed,
                "variance": d.variance,
            }
            for d in result.deductions
        ],
        "has_variance": result.has_variance,
        "distributed_meal_count": result.distributed_meal_count,
        "usage_ratio": result.usage_ratio,
        "warnings": [{"action": w.action, "message": w.message} for w in result.warnings],
    }


def preview_to_dict(preview: SetupPreview) -> Dict:
    return {
        "recipe_id": preview.recipe.id,
        "recipe_name": preview.recipe.name,
        "planned_servings": preview.recipe.servings,
        "planned_batch": preview.planned_batch,
        "ingredients": [
            {
                "product_name": r.product_name,
                "estimated_quantity": r.estimated_quantity,
                "unit": r.unit,
                "total_amount": r.total_amount,
                "inventory_item_id": r.inventory_item_id,
                "barcode": r.barcode,
                "confidence": r.confidence,
            }
            for r in preview.resolved
        ],
        "availability": [
            {
                "product_name": ing.product_name,
                "inventory_item_id": ing.inventory_item_id,
                "is_valid": check.is_valid,
                "available": check.available,
                "needed": check.needed,
            }
            for ing, check in preview.availability
        ],
        "warnings": list(preview.warnings),
        "suggested_initial_count": preview.suggested_initial_count,
    }


def usage_preview_to_dict(rows: List[UsagePreview]) -> List[Dict]:
    return [
        {
            "product_name": r.product_name,
            "inventory_item_id": r.inventory_item_id,
            "expected_quantity": r.expected_quantity,
            "expected_unit": r.expected_unit,
            "actual_quantity_needed": r.actual_quantity_needed,
        }
        for r in rows
    ]
