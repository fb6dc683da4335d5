"""API router configuration.

This module configures the main API router and includes all endpoint routers
for the recipe catalog.
"""

from fastapi import APIRouter

from recipebook.api.endpoints import categories, health, ingredient_categories, ingredients, recipes, units

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
api_router.include_router(ingredient_categories.router, prefix="/ingredient-categories", tags=["ingredient-categories"])
api_router.include_router(ingredients.router, prefix="/ingredients", tags=["ingredients"])
api_router.include_router(units.router, prefix="/units", tags=["units"])
api_router.include_router(recipes.router, prefix="/recipes", tags=["recipes"])
