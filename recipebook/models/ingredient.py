from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from recipebook.db.base_class import Base, TimestampMixin


class Ingredient(TimestampMixin, Base):
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text)
    ingredient_category_id = Column(
        Integer, ForeignKey("ingredient_categories.id", ondelete="SET NULL"), nullable=True, index=True
    )

    ingredient_category = relationship("IngredientCategory", back_populates="ingredients")
    unit_quantities = relationship("UnitQuantity", back_populates="ingredient", passive_deletes=True)
