from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from recipebook.api.deps import get_client
from recipebook.client import RecipeBookClient
from recipebook.schemas.unit_of_measure import UnitOfMeasureCreate, UnitOfMeasureResponse, UnitOfMeasureUpdate

router = APIRouter()


@router.get("/", response_model=List[UnitOfMeasureResponse])
@router.get("", response_model=List[UnitOfMeasureResponse])
async def get_units(client: RecipeBookClient = Depends(get_client)):
    return await client.unit_of_measure.find_many(order_by={"id": "asc"})


@router.post("/", response_model=UnitOfMeasureResponse, status_code=status.HTTP_201_CREATED)
@router.post("", response_model=UnitOfMeasureResponse, status_code=status.HTTP_201_CREATED)
async def create_unit(payload: UnitOfMeasureCreate, client: RecipeBookClient = Depends(get_client)):
    return await client.unit_of_measure.create(payload)


@router.get("/{unit_id}", response_model=UnitOfMeasureResponse)
async def get_unit(unit_id: int, client: RecipeBookClient = Depends(get_client)):
    unit = await client.unit_of_measure.find_unique(where={"id": unit_id})
    if not unit:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unit not found"
        )
    return unit


@router.put("/{unit_id}", response_model=UnitOfMeasureResponse)
async def update_unit(unit_id: int, payload: UnitOfMeasureUpdate, client: RecipeBookClient = Depends(get_client)):
    return await client.unit_of_measure.update(where={"id": unit_id}, data=payload)


@router.delete("/{unit_id}")
async def delete_unit(unit_id: int, client: RecipeBookClient = Depends(get_client)):
    """Delete a unit; fails with 409 while recipes still use it."""
    await client.unit_of_measure.delete(where={"id": unit_id})
    return {"message": "Unit deleted successfully"}
