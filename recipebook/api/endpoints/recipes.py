from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from recipebook.api.deps import get_client
from recipebook.client import RecipeBookClient
from recipebook.schemas.recipe import (
    RecipeDetailResponse,
    RecipeLineInput,
    RecipeSummaryResponse,
    RecipeWithLinesCreate,
    RecipeWithLinesUpdate,
)

router = APIRouter()

SUMMARY_INCLUDE = {"category": True, "yield_unit": True}

DETAIL_INCLUDE = {
    "category": True,
    "yield_unit": True,
    "recipe_ingredients": {
        "order_by": {"order": "asc"},
        "include": {
            "unit": True,
            "ingredient": True,
            "sub_recipe": {"select": {"id": True, "name": True}},
        },
    },
}


def _line_values(lines: Optional[List[RecipeLineInput]]) -> List[Dict[str, Any]]:
    """Ingredient lines in submission order; the list position becomes ``order``."""
    return [{**line.model_dump(), "order": index} for index, line in enumerate(lines or [])]


@router.get("/", response_model=List[RecipeSummaryResponse])
@router.get("", response_model=List[RecipeSummaryResponse])  # Handle requests without trailing slash
async def get_recipes(
    search: Optional[str] = Query(None, description="Search term for recipe name"),
    tag: Optional[str] = Query(None, description="Only recipes carrying this tag"),
    category_id: Optional[int] = Query(None, description="Only recipes of this category"),
    skip: int = Query(0, ge=0, description="Number of recipes to skip"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Maximum number of recipes to return"),
    client: RecipeBookClient = Depends(get_client)
):
    """
    Get recipes ordered by category name, then recipe name.

    Uncategorized recipes sort with a NULL category name.
    """
    where: Dict[str, Any] = {}
    if search:
        where["name"] = {"contains": search, "mode": "insensitive"}
    if tag:
        where["tags"] = {"has": tag}
    if category_id is not None:
        where["category_id"] = category_id

    return await client.recipe.find_many(
        where=where,
        include=SUMMARY_INCLUDE,
        order_by=[{"category": {"name": "asc"}}, {"name": "asc"}],
        skip=skip or None,
        take=limit,
    )


@router.get("/{recipe_id}", response_model=RecipeDetailResponse)
async def get_recipe(recipe_id: int, client: RecipeBookClient = Depends(get_client)):
    """Get a recipe with its ordered ingredient lines."""
    recipe = await client.recipe.find_unique(where={"id": recipe_id}, include=DETAIL_INCLUDE)
    if not recipe:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recipe not found"
        )
    return recipe


@router.post("/", response_model=RecipeDetailResponse, status_code=status.HTTP_201_CREATED)
@router.post("", response_model=RecipeDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_recipe(payload: RecipeWithLinesCreate, client: RecipeBookClient = Depends(get_client)):
    """
    Create a recipe together with its ingredient lines.

    The recipe and every line are written in one transaction; a line that
    names both or neither of ingredient_id and sub_recipe_id rejects the
    whole request.
    """
    data = payload.model_dump(exclude={"ingredients"})
    lines = _line_values(payload.ingredients)

    async def create_with_lines(tx):
        recipe = await tx.recipe.create(data=data)
        if lines:
            await tx.unit_quantity.create_many(data=[{**line, "recipe_id": recipe["id"]} for line in lines])
        return await tx.recipe.find_unique(where={"id": recipe["id"]}, include=DETAIL_INCLUDE)

    return await client.transaction(create_with_lines)


@router.put("/{recipe_id}", response_model=RecipeDetailResponse)
async def update_recipe(
    recipe_id: int,
    payload: RecipeWithLinesUpdate,
    client: RecipeBookClient = Depends(get_client)
):
    """
    Replace a recipe; when ``ingredients`` is sent, all lines are replaced too.
    """
    data: Dict[str, Any] = payload.model_dump(exclude={"ingredients"})
    if payload.ingredients is not None:
        data["recipe_ingredients"] = {"delete_many": {}, "create": _line_values(payload.ingredients)}

    async def replace(tx):
        await tx.recipe.update(where={"id": recipe_id}, data=data)
        return await tx.recipe.find_unique(where={"id": recipe_id}, include=DETAIL_INCLUDE)

    return await client.transaction(replace)


@router.delete("/{recipe_id}")
async def delete_recipe(recipe_id: int, client: RecipeBookClient = Depends(get_client)):
    """Delete a recipe and its ingredient lines; fails with 409 while it is used as a sub-recipe."""
    await client.recipe.delete(where={"id": recipe_id})
    return {"message": "Recipe deleted successfully"}
