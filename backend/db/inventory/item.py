import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from ..database import Base, utcnow


class InventoryItem(Base):
    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_nonneg"),
        CheckConstraint("reserved_quantity >= 0", name="ck_inventory_items_reserved_nonneg"),
        CheckConstraint("reserved_quantity <= quantity", name="ck_inventory_items_reserved_le_quantity"),
        CheckConstraint("distributed_quantity >= 0", name="ck_inventory_items_distributed_nonneg"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    food_bank_id = Column(Uuid, nullable=False, index=True)

    product_name = Column(String, nullable=False)
    brand = Column(String, nullable=False, default="")
    barcode = Column(String, nullable=True, index=True)
    unit = Column(Text, nullable=False, default="container")
    expiry_date = Column(Date, nullable=True)

    # Containers on hand. Only services.inventory.apply_quantity_change writes this.
    quantity = Column(Integer, nullable=False, default=0)
    reserved_quantity = Column(Integer, nullable=False, default=0)
    distributed_quantity = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    version = Column(Integer, nullable=False)

    movements = relationship(
        "InventoryMovement",
        back_populates="inventory_item",
        cascade="all, delete-orphan",
        order_by="InventoryMovement.created_at",
    )

    # Concurrent writers to the same row fail with StaleDataError instead of losing an update
    __mapper_args__ = {"version_id_col": version}

    @property
    def available_quantity(self) -> int:
        return max(0, int(self.quantity or 0) - int(self.reserved_quantity or 0))

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "food_bank_id": self.food_bank_id,
            "product_name": self.product_name,
            "brand": self.brand,
            "barcode": self.barcode,
            "unit": self.unit,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "quantity": int(self.quantity or 0),
            "reserved_quantity": int(self.reserved_quantity or 0),
            "distributed_quantity": int(self.distributed_quantity or 0),
            "available_quantity": self.available_quantity,
        }
