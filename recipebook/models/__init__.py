"""Database models."""

# Import all models here to ensure they're recognized by SQLAlchemy
from recipebook.models.category import Category
from recipebook.models.ingredient import Ingredient
from recipebook.models.ingredient_category import IngredientCategory
from recipebook.models.recipe import Recipe
from recipebook.models.unit_of_measure import UnitOfMeasure, UnitType
from recipebook.models.unit_quantity import UnitQuantity
from recipebook.models.user import User

__all__ = [
    "Category",
    "IngredientCategory",
    "UnitOfMeasure",
    "UnitType",
    "Ingredient",
    "Recipe",
    "UnitQuantity",
    "User",
]
