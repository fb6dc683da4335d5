from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from recipebook.schemas.query import DecimalFieldUpdate, IntFieldUpdate


class UnitQuantityBase(BaseModel):
    recipe_id: int = Field(..., description="Recipe this line belongs to")
    ingredient_id: Optional[int] = Field(None, description="Plain ingredient, exclusive with sub_recipe_id")
    sub_recipe_id: Optional[int] = Field(None, description="Recipe used as a component, exclusive with ingredient_id")
    quantity: Decimal = Field(..., description="Amount in the given unit")
    unit_id: int
    order: int = Field(0, ge=0, description="Display position within the recipe")


class UnitQuantityCreate(UnitQuantityBase):
    model_config = ConfigDict(extra="forbid")


class UnitQuantityUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    recipe_id: Optional[int] = None
    ingredient_id: Optional[int] = None
    sub_recipe_id: Optional[int] = None
    quantity: Optional[Union[Decimal, DecimalFieldUpdate]] = None
    unit_id: Optional[int] = None
    order: Optional[Union[int, IntFieldUpdate]] = None


class UnitQuantityResponse(UnitQuantityBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime
