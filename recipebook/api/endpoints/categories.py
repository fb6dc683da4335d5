from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from recipebook.api.deps import get_client
from recipebook.client import RecipeBookClient
from recipebook.schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate

router = APIRouter()


@router.get("/", response_model=List[CategoryResponse])
@router.get("", response_model=List[CategoryResponse])  # Handle requests without trailing slash
async def get_categories(client: RecipeBookClient = Depends(get_client)):
    """Get all recipe categories in alphabetical order."""
    return await client.category.find_many(order_by={"name": "asc"})


@router.post("/", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(payload: CategoryCreate, client: RecipeBookClient = Depends(get_client)):
    return await client.category.create(payload)


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(category_id: int, client: RecipeBookClient = Depends(get_client)):
    category = await client.category.find_unique(where={"id": category_id})
    if not category:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Category not found"
        )
    return category


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(category_id: int, payload: CategoryUpdate, client: RecipeBookClient = Depends(get_client)):
    return await client.category.update(where={"id": category_id}, data=payload)


@router.delete("/{category_id}")
async def delete_category(category_id: int, client: RecipeBookClient = Depends(get_client)):
    """Delete a category; its recipes are kept and become uncategorized."""
    await client.category.delete(where={"id": category_id})
    return {"message": "Category deleted successfully"}
