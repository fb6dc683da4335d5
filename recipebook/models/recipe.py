from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from recipebook.db.base_class import Base, TimestampMixin
from recipebook.models.types import StringList


class Recipe(TimestampMixin, Base):
    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    instructions = Column(Text, nullable=False)
    yield_quantity = Column(Numeric(12, 3))
    yield_unit_id = Column(Integer, ForeignKey("units_of_measure.id", ondelete="RESTRICT"), nullable=True)
    prep_time_minutes = Column(Integer)
    cook_time_minutes = Column(Integer)
    tags = Column(StringList, nullable=False, default=list)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    category = relationship("Category", back_populates="recipes")
    yield_unit = relationship("UnitOfMeasure", back_populates="yield_recipes")
    user = relationship("User", back_populates="recipes")
    recipe_ingredients = relationship(
        "UnitQuantity",
        back_populates="recipe",
        foreign_keys="UnitQuantity.recipe_id",
        passive_deletes=True,
    )
    used_as_sub_recipe = relationship(
        "UnitQuantity",
        back_populates="sub_recipe",
        foreign_keys="UnitQuantity.sub_recipe_id",
        passive_deletes=True,
    )
