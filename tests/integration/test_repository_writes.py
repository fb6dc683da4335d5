"""
Integration tests for repository writes: constraint errors, nested writes,
atomic updates and the ingredient-line invariant.
"""

from decimal import Decimal

import pytest

from recipebook.services.async_error_handler import ErrorCode, KnownRequestError, NotFoundError, ValidationError


@pytest.mark.asyncio
async def test_create_returns_full_record(client):
    unit = await client.unit_of_measure.create(data={"name": "litre", "abbreviation": "l", "type": "VOLUME"})
    assert unit["id"] == 1
    assert unit["type"] == "VOLUME"
    assert unit["created_at"] is not None


@pytest.mark.asyncio
async def test_duplicate_name_is_a_unique_violation(client, catalog):
    with pytest.raises(KnownRequestError) as exc_info:
        await client.category.create(data={"name": "Baking"})
    assert exc_info.value.code == ErrorCode.UNIQUE_CONSTRAINT_VIOLATION
    assert exc_info.value.meta["target"] == ["name"]
    assert await client.category.count() == 2


@pytest.mark.asyncio
async def test_unknown_write_field_is_rejected(client):
    with pytest.raises(ValidationError) as exc_info:
        await client.category.create(data={"name": "Desserts", "color": "pink"})
    assert exc_info.value.path == ["data", "color"]


@pytest.mark.asyncio
async def test_create_connects_to_one_relation(client, catalog):
    pasta = await client.recipe.create(
        data={"name": "Pasta", "instructions": "Boil", "category": {"connect": {"name": "Soups"}}},
        include={"category": True},
    )
    assert pasta["category_id"] == catalog["soups"]["id"]
    assert pasta["category"]["name"] == "Soups"

    with pytest.raises(NotFoundError):
        await client.recipe.create(data={"name": "Pie", "instructions": "Bake", "category": {"connect": {"name": "Pies"}}})


@pytest.mark.asyncio
async def test_create_with_nested_lines(client, catalog):
    porridge = await client.recipe.create(
        data={
            "name": "Porridge",
            "instructions": "Stir",
            "recipe_ingredients": {"create": [
                {"ingredient_id": catalog["flour"]["id"], "quantity": 100, "unit_id": catalog["gram"]["id"]},
                {"ingredient_id": catalog["water"]["id"], "quantity": 250, "unit_id": catalog["gram"]["id"], "order": 1},
            ]},
        },
        include={"recipe_ingredients": {"order_by": {"order": "asc"}}},
    )
    lines = porridge["recipe_ingredients"]
    assert [line["quantity"] for line in lines] == [Decimal("100"), Decimal("250")]
    assert all(line["recipe_id"] == porridge["id"] for line in lines)


@pytest.mark.asyncio
async def test_invalid_nested_line_rolls_back_the_recipe(client, catalog):
    with pytest.raises(ValidationError, match="Cannot specify both") as exc_info:
        await client.recipe.create(data={
            "name": "Broken",
            "instructions": "None",
            "recipe_ingredients": {"create": [{
                "ingredient_id": catalog["flour"]["id"],
                "sub_recipe_id": catalog["dough"]["id"],
                "quantity": 1,
                "unit_id": catalog["gram"]["id"],
            }]},
        })
    assert exc_info.value.path == ["data", "recipe_ingredients", "create", "0", "sub_recipe_id"]
    assert await client.recipe.count(where={"name": "Broken"}) == 0


@pytest.mark.asyncio
async def test_line_needs_ingredient_or_sub_recipe(client, catalog):
    with pytest.raises(ValidationError) as exc_info:
        await client.unit_quantity.create(data={
            "recipe_id": catalog["soup"]["id"],
            "quantity": 1,
            "unit_id": catalog["gram"]["id"],
        })
    assert exc_info.value.message == "Each ingredient line must have either ingredient_id or sub_recipe_id"
    assert exc_info.value.path == ["data", "ingredient_id"]

    valid = {"recipe_id": catalog["soup"]["id"], "ingredient_id": catalog["tomato"]["id"], "quantity": 1, "unit_id": catalog["gram"]["id"]}
    with pytest.raises(ValidationError) as exc_info:
        await client.unit_quantity.create_many(data=[valid, {
            "recipe_id": catalog["soup"]["id"],
            "quantity": 1,
            "unit_id": catalog["gram"]["id"],
        }])
    assert exc_info.value.path == ["data", "1", "ingredient_id"]
    assert await client.unit_quantity.count(where={"recipe_id": catalog["soup"]["id"]}) == 1


@pytest.mark.asyncio
async def test_update_keeps_line_invariant(client, catalog):
    with pytest.raises(ValidationError, match="Cannot specify both"):
        await client.unit_quantity.update_many(
            where={"recipe_id": catalog["dough"]["id"]},
            data={"sub_recipe_id": catalog["soup"]["id"]},
        )

    [line] = await client.unit_quantity.find_many(where={"recipe_id": catalog["bread"]["id"]})
    swapped = await client.unit_quantity.update(
        where={"id": line["id"]},
        data={"sub_recipe_id": None, "ingredient_id": catalog["flour"]["id"]},
    )
    assert swapped["sub_recipe_id"] is None
    assert swapped["ingredient_id"] == catalog["flour"]["id"]


@pytest.mark.asyncio
async def test_atomic_number_updates(client, catalog):
    where = {"id": catalog["bread"]["id"]}
    assert (await client.recipe.update(where=where, data={"prep_time_minutes": {"increment": 5}}))["prep_time_minutes"] == 25
    assert (await client.recipe.update(where=where, data={"prep_time_minutes": {"multiply": 2}}))["prep_time_minutes"] == 50
    assert (await client.recipe.update(where=where, data={"prep_time_minutes": {"divide": 3}}))["prep_time_minutes"] == 16
    assert (await client.recipe.update(where=where, data={"cook_time_minutes": {"decrement": 10}}))["cook_time_minutes"] == 30

    with pytest.raises(ValidationError, match="Division by zero"):
        await client.recipe.update(where=where, data={"prep_time_minutes": {"divide": 0}})
    with pytest.raises(ValidationError):
        await client.recipe.update(where=where, data={"prep_time_minutes": {"increment": 1, "multiply": 2}})


@pytest.mark.asyncio
async def test_required_field_cannot_be_nulled(client, catalog):
    with pytest.raises(ValidationError, match="cannot be set to null"):
        await client.recipe.update(where={"id": catalog["bread"]["id"]}, data={"name": None})


@pytest.mark.asyncio
async def test_tags_set_and_push(client, catalog):
    where = {"id": catalog["bread"]["id"]}
    pushed = await client.recipe.update(where=where, data={"tags": {"push": "crusty"}})
    assert pushed["tags"] == ["vegan", "baked", "crusty"]
    replaced = await client.recipe.update(where=where, data={"tags": {"set": ["sourdough"]}})
    assert replaced["tags"] == ["sourdough"]

    with pytest.raises(ValidationError, match="push"):
        await client.recipe.update_many(where={}, data={"tags": {"push": "x"}})


@pytest.mark.asyncio
async def test_update_missing_record(client):
    with pytest.raises(NotFoundError):
        await client.category.update(where={"id": 42}, data={"name": "Anything"})


@pytest.mark.asyncio
async def test_update_many_and_delete_many(client, catalog):
    assert await client.recipe.update_many(where={"tags": {"has": "vegan"}}, data={"cook_time_minutes": 30}) == 2
    assert await client.recipe.count(where={"cook_time_minutes": 30}) == 2
    assert await client.unit_quantity.delete_many(where={"recipe_id": catalog["dough"]["id"]}) == 2
    assert await client.unit_quantity.count() == 2


@pytest.mark.asyncio
async def test_nested_line_replacement(client, catalog):
    dough = await client.recipe.update(
        where={"id": catalog["dough"]["id"]},
        data={
            "instructions": "Knead well",
            "recipe_ingredients": {
                "delete_many": {},
                "create": [{"ingredient_id": catalog["flour"]["id"], "quantity": 450, "unit_id": catalog["gram"]["id"]}],
            },
        },
        include={"recipe_ingredients": True},
    )
    assert dough["instructions"] == "Knead well"
    assert [line["quantity"] for line in dough["recipe_ingredients"]] == [Decimal("450")]


@pytest.mark.asyncio
async def test_upsert(client):
    created = await client.category.upsert(
        where={"name": "Desserts"}, create={"name": "Desserts"}, update={"description": "Sweet"}
    )
    assert created["description"] is None
    updated = await client.category.upsert(
        where={"name": "Desserts"}, create={"name": "Desserts"}, update={"description": "Sweet"}
    )
    assert updated["id"] == created["id"]
    assert updated["description"] == "Sweet"


@pytest.mark.asyncio
async def test_upsert_keeps_line_invariant(client, catalog):
    with pytest.raises(ValidationError) as exc_info:
        await client.unit_quantity.upsert(
            where={"id": 999},
            create={"recipe_id": catalog["soup"]["id"], "quantity": 1, "unit_id": catalog["gram"]["id"]},
            update={},
        )
    assert exc_info.value.path == ["create", "ingredient_id"]

    [line] = await client.unit_quantity.find_many(where={"recipe_id": catalog["soup"]["id"]})
    with pytest.raises(ValidationError) as exc_info:
        await client.unit_quantity.upsert(
            where={"id": line["id"]},
            create={"recipe_id": catalog["soup"]["id"], "quantity": 1, "unit_id": catalog["gram"]["id"]},
            update={"sub_recipe_id": catalog["dough"]["id"]},
        )
    assert exc_info.value.path == ["update", "sub_recipe_id"]
    assert (await client.unit_quantity.find_unique(where={"id": line["id"]}))["sub_recipe_id"] is None
    assert await client.unit_quantity.count() == 4


@pytest.mark.asyncio
async def test_dangling_reference_is_a_foreign_key_violation(client, catalog):
    with pytest.raises(KnownRequestError) as exc_info:
        await client.unit_quantity.create(data={
            "recipe_id": catalog["soup"]["id"],
            "ingredient_id": 9999,
            "quantity": 1,
            "unit_id": catalog["gram"]["id"],
        })
    assert exc_info.value.code == ErrorCode.FOREIGN_KEY_VIOLATION
    assert await client.unit_quantity.count() == 4


@pytest.mark.asyncio
async def test_dangling_reference_rolls_back_the_batch(client, catalog):
    with pytest.raises(KnownRequestError) as exc_info:
        await client.batch([
            lambda tx: tx.category.create(data={"name": "Desserts"}),
            lambda tx: tx.unit_quantity.create(data={
                "recipe_id": 9999,
                "ingredient_id": catalog["flour"]["id"],
                "quantity": 1,
                "unit_id": catalog["gram"]["id"],
            }),
        ])
    assert exc_info.value.code == ErrorCode.FOREIGN_KEY_VIOLATION
    assert await client.category.find_unique(where={"name": "Desserts"}) is None


@pytest.mark.asyncio
async def test_create_many_skip_duplicates(client, catalog):
    created = await client.category.create_many(data=[{"name": "Baking"}, {"name": "Desserts"}], skip_duplicates=True)
    assert created == 1
    with pytest.raises(KnownRequestError):
        await client.category.create_many(data=[{"name": "Soups"}])
    assert await client.category.create_many(data=[]) == 0


@pytest.mark.asyncio
async def test_deleting_category_uncategorizes_recipes(client, catalog):
    deleted = await client.category.delete(where={"id": catalog["soups"]["id"]})
    assert deleted["name"] == "Soups"
    soup = await client.recipe.find_unique(where={"id": catalog["soup"]["id"]})
    assert soup["category_id"] is None


@pytest.mark.asyncio
async def test_ingredient_in_use_cannot_be_deleted(client, catalog):
    with pytest.raises(KnownRequestError) as exc_info:
        await client.ingredient.delete(where={"id": catalog["flour"]["id"]})
    assert exc_info.value.code == ErrorCode.FOREIGN_KEY_VIOLATION


@pytest.mark.asyncio
async def test_deleting_recipe_removes_its_lines(client, catalog):
    await client.recipe.delete(where={"id": catalog["soup"]["id"]})
    assert await client.unit_quantity.count(where={"recipe_id": catalog["soup"]["id"]}) == 0
    assert await client.ingredient.count() == 3


@pytest.mark.asyncio
async def test_sub_recipe_in_use_cannot_be_deleted(client, catalog):
    with pytest.raises(KnownRequestError) as exc_info:
        await client.recipe.delete(where={"id": catalog["dough"]["id"]})
    assert exc_info.value.code == ErrorCode.FOREIGN_KEY_VIOLATION
    assert await client.unit_quantity.count(where={"recipe_id": catalog["dough"]["id"]}) == 2


@pytest.mark.asyncio
async def test_delete_missing_record(client):
    with pytest.raises(NotFoundError):
        await client.recipe.delete(where={"id": 7})


@pytest.mark.asyncio
async def test_user_passwords_are_hashed(client):
    user = await client.user.create(data={"email": "chef@example.com", "name": "Chef", "password": "s3cret-pass"})
    assert user["password"] != "s3cret-pass"
    assert await client.user.verify_password("chef@example.com", "s3cret-pass")
    assert not await client.user.verify_password("chef@example.com", "wrong-pass")
    assert not await client.user.verify_password("nobody@example.com", "s3cret-pass")

    await client.user.update(where={"email": "chef@example.com"}, data={"password": "n3w-password"})
    assert await client.user.verify_password("chef@example.com", "n3w-password")
