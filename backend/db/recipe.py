import uuid
from sqlalchemy import Column, String, DateTime, Uuid
from sqlalchemy.orm import relationship
from .database import Base, utcnow
from .recipe_ingredient import RecipeIngredient  # noqa: F401


class Recipe(Base):
    """Recipe produced by the meal-plan generator: name, servings text, ordered ingredients"""
    __tablename__ = "recipes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    food_bank_id = Column(Uuid, nullable=False, index=True)
    name = Column(String, nullable=False)
    # Free text such as "200 people"; the leading integer is the planned batch size
    servings = Column(String, nullable=False, default="1")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    ingredients = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.sort_order",
        lazy="selectin",
    )

    @property
    def to_schema(self):
        """Convert Recipe model to schema dictionary format"""
        return {
            "id": self.id,
            "food_bank_id": self.food_bank_id,
            "name": self.name,
            "servings": self.servings,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "ingredients": [ri.to_schema for ri in self.ingredients],
        }
