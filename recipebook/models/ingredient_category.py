from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.orm import relationship

from recipebook.db.base_class import Base, TimestampMixin


class IngredientCategory(TimestampMixin, Base):
    __tablename__ = "ingredient_categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text)

    ingredients = relationship("Ingredient", back_populates="ingredient_category", passive_deletes=True)
