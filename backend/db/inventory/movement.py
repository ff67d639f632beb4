import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid, event
from sqlalchemy.orm import relationship

from ..database import Base, utcnow


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    food_bank_id = Column(Uuid, nullable=False, index=True)

    inventory_item_id = Column(
        Uuid,
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    change = Column(Integer, nullable=False)
    quantity_before = Column(Integer, nullable=False)
    quantity_after = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)  # 'INTAKE' | 'ADJUSTMENT' | 'DISTRIBUTION'
    source_type = Column(Text, nullable=True)
    source_session_id = Column(Uuid, nullable=True, index=True)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    created_by = Column(String, nullable=True)

    inventory_item = relationship("InventoryItem", back_populates="movements")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "inventory_item_id": self.inventory_item_id,
            "change": int(self.change),
            "quantity_before": int(self.quantity_before),
            "quantity_after": int(self.quantity_after),
            "reason": self.reason,
            "source_type": self.source_type,
            "source_session_id": self.source_session_id,
            "note": self.note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
        }


@event.listens_for(InventoryMovement, "before_update")
def _movement_is_append_only(mapper, connection, target):
    raise ValueError(f"inventory movement {target.id} is append-only")
