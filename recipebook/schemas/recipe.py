from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from recipebook.schemas.category import CategoryResponse
from recipebook.schemas.ingredient import IngredientResponse
from recipebook.schemas.query import DecimalFieldUpdate, IntFieldUpdate, StringListUpdate
from recipebook.schemas.unit_of_measure import UnitOfMeasureResponse


class RecipeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Name of the recipe")
    description: Optional[str] = Field(None, description="Description of the recipe")
    instructions: str = Field(..., min_length=1, description="Preparation instructions")
    yield_quantity: Optional[Decimal] = Field(None, ge=0, description="How much the recipe makes")
    yield_unit_id: Optional[int] = Field(None, description="Unit of the yield quantity")
    prep_time_minutes: Optional[int] = Field(None, ge=0, description="Preparation time in minutes")
    cook_time_minutes: Optional[int] = Field(None, ge=0, description="Cooking time in minutes")
    tags: List[str] = Field(default_factory=list, description="Ordered list of tags")
    category_id: Optional[int] = None
    user_id: Optional[int] = None


class RecipeCreate(RecipeBase):
    """Schema for creating a new recipe"""
    model_config = ConfigDict(extra="forbid")


class RecipeUpdate(BaseModel):
    """Schema for updating an existing recipe; numeric fields accept atomic operations"""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    instructions: Optional[str] = Field(None, min_length=1)
    yield_quantity: Optional[Union[Decimal, DecimalFieldUpdate]] = None
    yield_unit_id: Optional[int] = None
    prep_time_minutes: Optional[Union[int, IntFieldUpdate]] = None
    cook_time_minutes: Optional[Union[int, IntFieldUpdate]] = None
    tags: Optional[Union[List[str], StringListUpdate]] = None
    category_id: Optional[int] = None
    user_id: Optional[int] = None


class RecipeResponse(RecipeBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime


# Recipe payloads with their ingredient lines, used by the HTTP API

class RecipeLineInput(BaseModel):
    """One ingredient line; its position in the list becomes its order."""
    model_config = ConfigDict(extra="forbid")

    ingredient_id: Optional[int] = None
    sub_recipe_id: Optional[int] = None
    quantity: Decimal = Field(..., gt=0)
    unit_id: int


class RecipeWithLinesCreate(RecipeCreate):
    ingredients: Optional[List[RecipeLineInput]] = None


class RecipeWithLinesUpdate(RecipeCreate):
    """Full replacement of a recipe and all of its ingredient lines"""
    ingredients: Optional[List[RecipeLineInput]] = None


class SubRecipeSummary(BaseModel):
    id: int
    name: str


class RecipeLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ingredient_id: Optional[int] = None
    sub_recipe_id: Optional[int] = None
    quantity: Decimal
    unit_id: int
    order: int
    unit: UnitOfMeasureResponse
    ingredient: Optional[IngredientResponse] = None
    sub_recipe: Optional[SubRecipeSummary] = None


class RecipeSummaryResponse(RecipeResponse):
    category: Optional[CategoryResponse] = None
    yield_unit: Optional[UnitOfMeasureResponse] = None


class RecipeDetailResponse(RecipeSummaryResponse):
    recipe_ingredients: List[RecipeLineResponse] = Field(default_factory=list)
