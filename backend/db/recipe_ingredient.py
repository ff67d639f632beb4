import uuid
from sqlalchemy import Column, Float, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from .database import Base


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    recipe_id = Column(Uuid, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)

    product_name = Column(String, nullable=False)
    # Containers needed for one full recipe batch
    estimated_quantity = Column(Float, nullable=False)
    unit = Column(String, nullable=False)
    total_amount = Column(String, nullable=True)  # display only, e.g. "5 kg"
    sort_order = Column(Integer, nullable=False, default=0)

    recipe = relationship("Recipe", back_populates="ingredients")

    @property
    def to_schema(self):
        return {
            "product_name": self.product_name,
            "estimated_quantity": float(self.estimated_quantity),
            "unit": self.unit,
            "total_amount": self.total_amount,
        }
