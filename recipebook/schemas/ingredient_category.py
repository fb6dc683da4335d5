from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IngredientCategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class IngredientCategoryCreate(IngredientCategoryBase):
    model_config = ConfigDict(extra="forbid")


class IngredientCategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class IngredientCategoryResponse(IngredientCategoryBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime
