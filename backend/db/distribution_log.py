import uuid

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid, event

from .database import Base, utcnow

LOG_SESSION_STARTED = "session_started"
LOG_COUNTING_COMPLETED = "counting_completed"
LOG_INVENTORY_DEDUCTED = "inventory_deducted"
LOG_SESSION_CANCELLED = "session_cancelled"
LOG_ACTIONS = (LOG_SESSION_STARTED, LOG_COUNTING_COMPLETED, LOG_INVENTORY_DEDUCTED, LOG_SESSION_CANCELLED)


class DistributionLog(Base):
    """Append-only audit trail of distribution sessions."""
    __tablename__ = "distribution_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    food_bank_id = Column(Uuid, nullable=False, index=True)
    distribution_session_id = Column(Uuid, nullable=False, index=True)
    action = Column(Text, nullable=False, index=True)

    # Deduction entries only
    inventory_item_id = Column(Uuid, nullable=True)
    product_name = Column(String, nullable=True)
    quantity_before = Column(Integer, nullable=True)
    quantity_after = Column(Integer, nullable=True)
    quantity_changed = Column(Integer, nullable=True)

    performed_by = Column(String, nullable=True)
    performed_by_name = Column(String, nullable=True)
    performed_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    # Order among entries written together with the same performed_at
    sequence = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "distribution_session_id": self.distribution_session_id,
            "action": self.action,
            "inventory_item_id": self.inventory_item_id,
            "product_name": self.product_name,
            "quantity_before": self.quantity_before,
            "quantity_after": self.quantity_after,
            "quantity_changed": self.quantity_changed,
            "performed_by": self.performed_by,
            "performed_by_name": self.performed_by_name,
            "performed_at": self.performed_at.isoformat() if self.performed_at else None,
            "notes": self.notes,
        }


@event.listens_for(DistributionLog, "before_update")
def _log_entry_is_immutable(mapper, connection, target):
    raise ValueError(f"distribution log entry {target.id} cannot be modified")


@event.listens_for(DistributionLog, "before_delete")
def _log_entry_is_permanent(mapper, connection, target):
    raise ValueError(f"distribution log entry {target.id} cannot be deleted")
