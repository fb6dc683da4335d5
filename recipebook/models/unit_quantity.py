from sqlalchemy import Column, ForeignKey, Integer, Numeric
from sqlalchemy.orm import relationship

from recipebook.db.base_class import Base, TimestampMixin


class UnitQuantity(TimestampMixin, Base):
    """One ingredient line of a recipe: a quantity of an ingredient or of a sub-recipe."""
    __tablename__ = "unit_quantities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)
    ingredient_id = Column(Integer, ForeignKey("ingredients.id", ondelete="RESTRICT"), nullable=True, index=True)
    sub_recipe_id = Column(Integer, ForeignKey("recipes.id", ondelete="RESTRICT"), nullable=True, index=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_id = Column(Integer, ForeignKey("units_of_measure.id", ondelete="RESTRICT"), nullable=False)
    order = Column(Integer, nullable=False, default=0)

    recipe = relationship("Recipe", back_populates="recipe_ingredients", foreign_keys=[recipe_id])
    ingredient = relationship("Ingredient", back_populates="unit_quantities")
    sub_recipe = relationship("Recipe", back_populates="used_as_sub_recipe", foreign_keys=[sub_recipe_id])
    unit = relationship("UnitOfMeasure", back_populates="unit_quantities")
