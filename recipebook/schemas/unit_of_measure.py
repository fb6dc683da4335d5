from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from recipebook.models.unit_of_measure import UnitType


class UnitOfMeasureBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, description="Unique unit name, e.g. gram")
    abbreviation: Optional[str] = Field(None, max_length=20, description="Unique abbreviation, e.g. g")
    type: Optional[UnitType] = Field(None, description="WEIGHT, VOLUME, COUNT or OTHER")


class UnitOfMeasureCreate(UnitOfMeasureBase):
    """Schema for creating a new unit of measure"""
    model_config = ConfigDict(extra="forbid")


class UnitOfMeasureUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=50)
    abbreviation: Optional[str] = Field(None, max_length=20)
    type: Optional[UnitType] = None


class UnitOfMeasureResponse(UnitOfMeasureBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    updated_at: datetime
