from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from recipebook.api.deps import get_client
from recipebook.client import RecipeBookClient
from recipebook.schemas.ingredient import IngredientCreate, IngredientResponse, IngredientUpdate

router = APIRouter()


@router.get("/", response_model=List[IngredientResponse])
@router.get("", response_model=List[IngredientResponse])  # Handle requests without trailing slash
async def get_ingredients(
    search: Optional[str] = Query(None, description="Search term for ingredient name"),
    ingredient_category_id: Optional[int] = Query(None, description="Only ingredients of this category"),
    client: RecipeBookClient = Depends(get_client)
):
    """Get ingredients with optional name search."""
    where = {}
    if search:
        where["name"] = {"contains": search, "mode": "insensitive"}
    if ingredient_category_id is not None:
        where["ingredient_category_id"] = ingredient_category_id
    return await client.ingredient.find_many(where=where, order_by={"name": "asc"})


@router.post("/", response_model=IngredientResponse, status_code=status.HTTP_201_CREATED)
@router.post("", response_model=IngredientResponse, status_code=status.HTTP_201_CREATED)
async def create_ingredient(payload: IngredientCreate, client: RecipeBookClient = Depends(get_client)):
    return await client.ingredient.create(payload)


@router.get("/{ingredient_id}", response_model=IngredientResponse)
async def get_ingredient(ingredient_id: int, client: RecipeBookClient = Depends(get_client)):
    """Get a specific ingredient by ID."""
    ingredient = await client.ingredient.find_unique(where={"id": ingredient_id})
    if not ingredient:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Ingredient not found"
        )
    return ingredient


@router.put("/{ingredient_id}", response_model=IngredientResponse)
async def update_ingredient(ingredient_id: int, payload: IngredientUpdate, client: RecipeBookClient = Depends(get_client)):
    return await client.ingredient.update(where={"id": ingredient_id}, data=payload)


@router.delete("/{ingredient_id}")
async def delete_ingredient(ingredient_id: int, client: RecipeBookClient = Depends(get_client)):
    """Delete an ingredient; fails with 409 while a recipe still uses it."""
    await client.ingredient.delete(where={"id": ingredient_id})
    return {"message": "Ingredient deleted successfully"}
