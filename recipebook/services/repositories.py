from typing import Any, Dict, Optional, Sequence

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recipebook.models import Category, Ingredient, IngredientCategory, Recipe, UnitOfMeasure, UnitQuantity, User
from recipebook.schemas import (
    CategoryCreate,
    CategoryUpdate,
    IngredientCategoryCreate,
    IngredientCategoryUpdate,
    IngredientCreate,
    IngredientUpdate,
    RecipeCreate,
    RecipeUpdate,
    UnitOfMeasureCreate,
    UnitOfMeasureUpdate,
    UnitQuantityCreate,
    UnitQuantityUpdate,
    UserCreate,
    UserUpdate,
)
from recipebook.services.async_error_handler import ValidationError, handle_async_db_errors
from recipebook.services.base import AsyncRepository
from recipebook.services.query_builder import model_info


class CategoryRepository(AsyncRepository):
    model = Category
    create_schema = CategoryCreate
    update_schema = CategoryUpdate


class IngredientCategoryRepository(AsyncRepository):
    model = IngredientCategory
    create_schema = IngredientCategoryCreate
    update_schema = IngredientCategoryUpdate


class UnitOfMeasureRepository(AsyncRepository):
    model = UnitOfMeasure
    create_schema = UnitOfMeasureCreate
    update_schema = UnitOfMeasureUpdate


class IngredientRepository(AsyncRepository):
    model = Ingredient
    create_schema = IngredientCreate
    update_schema = IngredientUpdate


class RecipeRepository(AsyncRepository):
    model = Recipe
    create_schema = RecipeCreate
    update_schema = RecipeUpdate


def check_line_component(ingredient_id: Optional[int], sub_recipe_id: Optional[int],
                         path: Sequence[str] = ("data",)) -> None:
    """An ingredient line references exactly one of an ingredient or a sub-recipe."""
    if ingredient_id is None and sub_recipe_id is None:
        raise ValidationError(
            "Each ingredient line must have either ingredient_id or sub_recipe_id",
            path=[*path, "ingredient_id"],
        )
    if ingredient_id is not None and sub_recipe_id is not None:
        raise ValidationError(
            "Cannot specify both ingredient_id and sub_recipe_id on one ingredient line",
            path=[*path, "sub_recipe_id"],
        )


class UnitQuantityRepository(AsyncRepository):
    model = UnitQuantity
    create_schema = UnitQuantityCreate
    update_schema = UnitQuantityUpdate

    async def before_create(self, session: AsyncSession, values: Dict[str, Any],
                            path: Sequence[str] = ("data",)) -> Dict[str, Any]:
        check_line_component(values.get("ingredient_id"), values.get("sub_recipe_id"), path)
        return values

    async def before_update(self, session: AsyncSession, values: Dict[str, Any], condition,
                            path: Sequence[str] = ("data",)) -> Dict[str, Any]:
        if "ingredient_id" not in values and "sub_recipe_id" not in values:
            return values
        # Merge the patch with every row it is about to touch
        rows = await session.execute(
            select(UnitQuantity.ingredient_id, UnitQuantity.sub_recipe_id).where(condition)
        )
        for row in rows:
            check_line_component(
                values["ingredient_id"] if "ingredient_id" in values else row.ingredient_id,
                values["sub_recipe_id"] if "sub_recipe_id" in values else row.sub_recipe_id,
                path,
            )
        return values


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def is_bcrypt_hash(value: str) -> bool:
    return value.startswith(("$2a$", "$2b$", "$2y$")) and len(value) == 60


class UserRepository(AsyncRepository):
    """Users; passwords are stored as bcrypt hashes and never compared in SQL."""

    model = User
    create_schema = UserCreate
    update_schema = UserUpdate

    async def before_create(self, session: AsyncSession, values: Dict[str, Any],
                            path: Sequence[str] = ("data",)) -> Dict[str, Any]:
        if not is_bcrypt_hash(values["password"]):
            values["password"] = hash_password(values["password"])
        return values

    async def before_update(self, session: AsyncSession, values: Dict[str, Any], condition,
                            path: Sequence[str] = ("data",)) -> Dict[str, Any]:
        if values.get("password") and not is_bcrypt_hash(values["password"]):
            values["password"] = hash_password(values["password"])
        return values

    @handle_async_db_errors("verify_password")
    async def verify_password(self, email: str, password: str) -> bool:
        """Check a plain password against the stored hash of the user with this email."""
        async with self.context.session_scope() as session:
            stored = (await session.execute(select(User.password).where(User.email == email))).scalar_one_or_none()
        if stored is None:
            return False
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))


REPOSITORIES = {
    "category": CategoryRepository,
    "ingredient_category": IngredientCategoryRepository,
    "unit_of_measure": UnitOfMeasureRepository,
    "ingredient": IngredientRepository,
    "recipe": RecipeRepository,
    "unit_quantity": UnitQuantityRepository,
    "user": UserRepository,
}


def check_default_omit(omit: Dict[str, Dict[str, bool]]) -> None:
    """Client-level omit defaults must name known repositories and their fields."""
    for entity, fields in omit.items():
        if entity not in REPOSITORIES:
            known = ", ".join(sorted(REPOSITORIES))
            raise ValidationError(f"Unknown model `{entity}` in omit, expected one of {known}",
                                  path=["options", "omit", entity])
        info = model_info(REPOSITORIES[entity].model)
        for name in fields:
            info.require_field(name, ["options", "omit", entity])
