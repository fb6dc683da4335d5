from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from recipebook.api.deps import get_client
from recipebook.client import RecipeBookClient
from recipebook.schemas.ingredient_category import (
    IngredientCategoryCreate,
    IngredientCategoryResponse,
    IngredientCategoryUpdate,
)

router = APIRouter()


@router.get("/", response_model=List[IngredientCategoryResponse])
@router.get("", response_model=List[IngredientCategoryResponse])
async def get_ingredient_categories(client: RecipeBookClient = Depends(get_client)):
    return await client.ingredient_category.find_many(order_by={"name": "asc"})


@router.post("/", response_model=IngredientCategoryResponse, status_code=status.HTTP_201_CREATED)
@router.post("", response_model=IngredientCategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_ingredient_category(payload: IngredientCategoryCreate, client: RecipeBookClient = Depends(get_client)):
    return await client.ingredient_category.create(payload)


@router.get("/{category_id}", response_model=IngredientCategoryResponse)
async def get_ingredient_category(category_id: int, client: RecipeBookClient = Depends(get_client)):
    category = await client.ingredient_category.find_unique(where={"id": category_id})
    if not category:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ingredient category not found"
        )
    return category


@router.put("/{category_id}", response_model=IngredientCategoryResponse)
async def update_ingredient_category(
    category_id: int,
    payload: IngredientCategoryUpdate,
    client: RecipeBookClient = Depends(get_client)
):
    return await client.ingredient_category.update(where={"id": category_id}, data=payload)


@router.delete("/{category_id}")
async def delete_ingredient_category(category_id: int, client: RecipeBookClient = Depends(get_client)):
    await client.ingredient_category.delete(where={"id": category_id})
    return {"message": "Ingredient category deleted successfully"}
