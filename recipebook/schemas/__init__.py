from .category import CategoryCreate, CategoryUpdate, CategoryResponse
from .ingredient_category import IngredientCategoryCreate, IngredientCategoryUpdate, IngredientCategoryResponse
from .unit_of_measure import UnitOfMeasureCreate, UnitOfMeasureUpdate, UnitOfMeasureResponse
from .ingredient import IngredientCreate, IngredientUpdate, IngredientResponse
from .recipe import (
    RecipeCreate,
    RecipeUpdate,
    RecipeResponse,
    RecipeLineInput,
    RecipeWithLinesCreate,
    RecipeWithLinesUpdate,
    RecipeSummaryResponse,
    RecipeDetailResponse,
)
from .unit_quantity import UnitQuantityCreate, UnitQuantityUpdate, UnitQuantityResponse
from .user import UserCreate, UserUpdate, UserResponse

__all__ = [
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryResponse",
    "IngredientCategoryCreate",
    "IngredientCategoryUpdate",
    "IngredientCategoryResponse",
    "UnitOfMeasureCreate",
    "UnitOfMeasureUpdate",
    "UnitOfMeasureResponse",
    "IngredientCreate",
    "IngredientUpdate",
    "IngredientResponse",
    "RecipeCreate",
    "RecipeUpdate",
    "RecipeResponse",
    "RecipeLineInput",
    "RecipeWithLinesCreate",
    "RecipeWithLinesUpdate",
    "RecipeSummaryResponse",
    "RecipeDetailResponse",
    "UnitQuantityCreate",
    "UnitQuantityUpdate",
    "UnitQuantityResponse",
    "UserCreate",
    "UserUpdate",
    "UserResponse",
]
