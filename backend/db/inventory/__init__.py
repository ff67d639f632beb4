"""
Inventory (one stock figure per record, owned by a food bank).

Models:
- InventoryItem (product name/brand, quantity, reserved and distributed totals)
- InventoryMovement (append-only deltas, one per quantity change)
"""

from .item import InventoryItem
from .movement import InventoryMovement

__all__ = ["InventoryItem", "InventoryMovement"]
