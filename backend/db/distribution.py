import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import relationship

from .database import Base, utcnow

SESSION_ACTIVE = "active"
SESSION_COMPLETED = "completed"
SESSION_CANCELLED = "cancelled"
SESSION_STATUSES = (SESSION_ACTIVE, SESSION_COMPLETED, SESSION_CANCELLED)


class DistributionSession(Base):
    __tablename__ = "distribution_sessions"
    __table_args__ = (
        # At most one active session per recipe for a food bank
        Index(
            "ux_distribution_sessions_active_recipe",
            "food_bank_id",
            "recipe_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    food_bank_id = Column(Uuid, nullable=False, index=True)

    recipe_id = Column(Uuid, nullable=False, index=True)
    recipe_name = Column(String, nullable=False)
    planned_servings = Column(String, nullable=False)  # e.g. "200 people"

    status = Column(Text, nullable=False, default=SESSION_ACTIVE, index=True)  # active|completed|cancelled

    initial_meal_count = Column(Integer, nullable=False)
    final_meal_count = Column(Integer, nullable=True)
    distributed_meal_count = Column(Integer, nullable=True)
    has_variance = Column(Boolean, nullable=False, default=False)

    started_by = Column(String, nullable=True)
    started_by_name = Column(String, nullable=True)
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_by = Column(String, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)

    ingredient_usage = relationship(
        "IngredientUsage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="IngredientUsage.position",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status == SESSION_ACTIVE


class IngredientUsage(Base):
    __tablename__ = "ingredient_usages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, ForeignKey("distribution_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)

    product_name = Column(String, nullable=False)
    # No FK: the item may be gone by the time the session completes
    inventory_item_id = Column(Uuid, nullable=True, index=True)
    barcode = Column(String, nullable=True)

    expected_quantity = Column(Float, nullable=False)
    expected_unit = Column(String, nullable=False)
    total_amount = Column(String, nullable=True)

    actual_quantity = Column(Integer, nullable=True)
    deducted_from_inventory = Column(Boolean, nullable=False, default=False)
    deducted_quantity = Column(Integer, nullable=False, default=0)
    deducted_at = Column(DateTime, nullable=True)
    variance = Column(Integer, nullable=False, default=0)
    variance_percentage = Column(Float, nullable=False, default=0.0)

    session = relationship("DistributionSession", back_populates="ingredient_usage")
