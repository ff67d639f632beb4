"""
Caller identity.

Authentication happens upstream; the gateway forwards the authenticated
food bank id in the ``X-Food-Bank-Id`` header. Ownership of every session,
recipe and inventory item is checked against it.
"""

from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, status


async def current_food_bank(x_food_bank_id: Optional[str] = Header(None)) -> UUID:
    if not x_food_bank_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Food-Bank-Id header")
    try:
        return UUID(x_food_bank_id.strip())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Malformed X-Food-Bank-Id header")


def ensure_owner(owner_id: UUID, food_bank_id: UUID, what: str = "resource") -> None:
    if owner_id != food_bank_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Access denied to {what}")


async def current_actor(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Operator id for audit entries; optional, the gateway may not know it."""
    return (x_user_id or "").strip() or None
