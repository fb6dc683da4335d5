from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IngredientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Name of the ingredient")
    description: Optional[str] = Field(None, description="Optional description")
    ingredient_category_id: Optional[int] = Field(None, description="Ingredient category")


class IngredientCreate(IngredientBase):
    """Schema for creating a new ingredient"""
    model_config = ConfigDict(extra="forbid")


class IngredientUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    ingredient_category_id: Optional[int] = None


class IngredientResponse(IngredientBase):
    """Schema for ingredient response with full details"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime
