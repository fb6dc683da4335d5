"""
Integration tests for repository reads: filters, ordering, pagination,
selection and relation loading.
"""

from decimal import Decimal

import pytest

from recipebook.services.async_error_handler import ErrorCode, NotFoundError, ValidationError
from tests.conftest import create_client


def names(records):
    return [record["name"] for record in records]


@pytest.mark.asyncio
async def test_find_unique(client, catalog):
    bread = await client.recipe.find_unique(where={"id": catalog["bread"]["id"]})
    assert bread["name"] == "Bread"
    assert bread["tags"] == ["vegan", "baked"]
    assert bread["yield_quantity"] == Decimal("1")
    assert await client.recipe.find_unique(where={"id": 999}) is None


@pytest.mark.asyncio
async def test_find_unique_or_throw(client, catalog):
    with pytest.raises(NotFoundError) as exc_info:
        await client.category.find_unique_or_throw(where={"name": "Desserts"})
    assert exc_info.value.code == ErrorCode.RECORD_NOT_FOUND
    assert exc_info.value.invocation == "Category.find_unique_or_throw()"


@pytest.mark.asyncio
async def test_find_unique_requires_unique_field(client, catalog):
    with pytest.raises(ValidationError):
        await client.recipe.find_unique(where={"name": "Bread"})


@pytest.mark.asyncio
async def test_list_filters(client, catalog):
    order = {"id": "asc"}
    assert names(await client.recipe.find_many(where={"tags": {"has": "vegan"}}, order_by=order)) == ["Bread", "Tomato Soup"]
    assert names(await client.recipe.find_many(where={"tags": {"has_every": ["vegan", "baked"]}})) == ["Bread"]
    assert names(await client.recipe.find_many(
        where={"tags": {"has_some": ["base", "baked"]}}, order_by=order
    )) == ["Dough", "Bread"]
    assert await client.recipe.find_many(where={"tags": {"is_empty": True}}) == []
    assert names(await client.recipe.find_many(where={"tags": ["vegan"]})) == ["Tomato Soup"]


@pytest.mark.asyncio
async def test_string_and_logical_filters(client, catalog):
    assert names(await client.recipe.find_many(where={"name": {"contains": "BRE", "mode": "insensitive"}})) == ["Bread"]
    assert names(await client.recipe.find_many(
        where={"OR": [{"name": {"starts_with": "Tom"}}, {"prep_time_minutes": {"lt": 12}}]},
        order_by={"name": "asc"},
    )) == ["Dough", "Tomato Soup"]
    assert names(await client.recipe.find_many(
        where={"NOT": {"cook_time_minutes": None}}
    )) == ["Bread"]
    assert names(await client.recipe.find_many(
        where={"prep_time_minutes": {"in": [10, 15]}, "category_id": {"not": catalog["soups"]["id"]}}
    )) == ["Dough"]


@pytest.mark.asyncio
async def test_relation_filters(client, catalog):
    assert names(await client.recipe.find_many(where={"category": {"name": "Soups"}})) == ["Tomato Soup"]
    assert await client.recipe.find_many(where={"category": None}) == []
    assert names(await client.recipe.find_many(
        where={"recipe_ingredients": {"some": {"ingredient": {"name": "Flour"}}}}
    )) == ["Dough"]
    assert names(await client.recipe.find_many(where={"used_as_sub_recipe": {"some": {}}})) == ["Dough"]
    assert names(await client.recipe.find_many(
        where={"recipe_ingredients": {"every": {"ingredient_id": {"not": None}}}},
        order_by={"name": "asc"},
    )) == ["Dough", "Tomato Soup"]
    assert names(await client.category.find_many(where={"recipes": {"none": {}}})) == []


@pytest.mark.asyncio
async def test_order_by_relation_field(client, catalog):
    recipes = await client.recipe.find_many(order_by=[{"category": {"name": "desc"}}, {"name": "asc"}])
    assert names(recipes) == ["Tomato Soup", "Bread", "Dough"]


@pytest.mark.asyncio
async def test_take_skip_and_negative_take(client, catalog):
    order = {"name": "asc"}
    assert names(await client.recipe.find_many(order_by=order, take=2)) == ["Bread", "Dough"]
    assert names(await client.recipe.find_many(order_by=order, skip=1)) == ["Dough", "Tomato Soup"]
    assert names(await client.recipe.find_many(order_by=order, take=-2)) == ["Dough", "Tomato Soup"]


@pytest.mark.asyncio
async def test_cursor_pagination(client, catalog):
    cursor = {"id": catalog["bread"]["id"]}
    assert names(await client.recipe.find_many(order_by={"id": "asc"}, cursor=cursor, take=2)) == ["Bread", "Tomato Soup"]
    assert names(await client.recipe.find_many(order_by={"id": "asc"}, cursor=cursor, skip=1)) == ["Tomato Soup"]
    assert names(await client.recipe.find_many(order_by={"id": "asc"}, cursor=cursor, take=-2)) == ["Dough", "Bread"]
    assert await client.recipe.find_many(cursor={"id": 999}) == []


@pytest.mark.asyncio
async def test_cursor_with_nullable_sort_field(client, catalog):
    order = [{"cook_time_minutes": "asc"}, {"id": "asc"}]
    everything = names(await client.recipe.find_many(order_by=order))
    after_dough = names(await client.recipe.find_many(order_by=order, cursor={"id": catalog["dough"]["id"]}))
    assert after_dough == everything[everything.index("Dough"):]


@pytest.mark.asyncio
async def test_distinct(client, catalog):
    recipes = await client.recipe.find_many(distinct=["category_id"], order_by={"id": "asc"})
    assert names(recipes) == ["Dough", "Tomato Soup"]


@pytest.mark.asyncio
async def test_find_first(client, catalog):
    assert (await client.recipe.find_first(order_by={"name": "desc"}))["name"] == "Tomato Soup"
    assert (await client.recipe.find_first(order_by={"name": "desc"}, take=-1))["name"] == "Bread"
    assert await client.recipe.find_first(where={"name": "Pizza"}) is None
    with pytest.raises(NotFoundError):
        await client.recipe.find_first_or_throw(where={"name": "Pizza"})


@pytest.mark.asyncio
async def test_select_fields(client, catalog):
    bread = await client.recipe.find_unique(
        where={"id": catalog["bread"]["id"]},
        select={"id": True, "name": True, "category": {"select": {"name": True}}},
    )
    assert bread == {"id": catalog["bread"]["id"], "name": "Bread", "category": {"name": "Baking"}}


@pytest.mark.asyncio
async def test_select_and_include_are_exclusive(client, catalog):
    with pytest.raises(ValidationError):
        await client.recipe.find_many(select={"id": True}, include={"category": True})


@pytest.mark.asyncio
async def test_include_nested_relations(client, catalog):
    bread = await client.recipe.find_unique(
        where={"id": catalog["bread"]["id"]},
        include={
            "category": True,
            "yield_unit": True,
            "recipe_ingredients": {
                "order_by": {"order": "asc"},
                "include": {"unit": True, "ingredient": True, "sub_recipe": {"select": {"id": True, "name": True}}},
            },
        },
    )
    assert bread["category"]["name"] == "Baking"
    assert bread["yield_unit"]["abbreviation"] == "pc"
    [line] = bread["recipe_ingredients"]
    assert line["ingredient"] is None
    assert line["sub_recipe"] == {"id": catalog["dough"]["id"], "name": "Dough"}
    assert line["unit"]["name"] == "piece"


@pytest.mark.asyncio
async def test_include_to_many_is_paginated_per_parent(client, catalog):
    recipes = await client.recipe.find_many(
        order_by={"id": "asc"},
        include={"recipe_ingredients": {"order_by": {"order": "desc"}, "take": 1, "include": {"ingredient": True}}},
    )
    lines = {recipe["name"]: recipe["recipe_ingredients"] for recipe in recipes}
    assert [line["ingredient"]["name"] for line in lines["Dough"]] == ["Water"]
    assert [line["ingredient"]["name"] for line in lines["Tomato Soup"]] == ["Tomato"]
    assert len(lines["Bread"]) == 1


@pytest.mark.asyncio
async def test_include_filtered_to_many(client, catalog):
    category = await client.category.find_unique(
        where={"name": "Baking"},
        include={"recipes": {"where": {"tags": {"has": "vegan"}}}},
    )
    assert names(category["recipes"]) == ["Bread"]


@pytest.mark.asyncio
async def test_omit(client, catalog):
    recipe = await client.recipe.find_unique(where={"id": catalog["soup"]["id"]}, omit={"instructions": True})
    assert "instructions" not in recipe
    with pytest.raises(ValidationError):
        await client.recipe.find_many(select={"id": True}, omit={"name": True})


@pytest.mark.asyncio
async def test_client_level_omit_defaults():
    client = await create_client(omit={"user": {"password": True}})
    try:
        user = await client.user.create(data={"email": "cook@example.com", "password": "correct-horse"})
        assert "password" not in user
        with_password = await client.user.find_unique(where={"id": user["id"]}, omit={"password": False})
        assert with_password["password"].startswith("$2")
    finally:
        await client.disconnect()


@pytest.mark.asyncio
async def test_fetch_related(client, catalog):
    lines = await client.recipe.fetch_related({"id": catalog["dough"]["id"]}, "recipe_ingredients", order_by={"order": "asc"})
    assert [line["ingredient_id"] for line in lines] == [catalog["flour"]["id"], catalog["water"]["id"]]
    category = await client.recipe.fetch_related({"id": catalog["soup"]["id"]}, "category")
    assert category["name"] == "Soups"
    with pytest.raises(ValidationError):
        await client.recipe.fetch_related({"id": catalog["soup"]["id"]}, "chef")
    with pytest.raises(NotFoundError):
        await client.recipe.fetch_related({"id": 999}, "category")


@pytest.mark.asyncio
async def test_count(client, catalog):
    assert await client.recipe.count() == 3
    assert await client.recipe.count(where={"tags": {"has": "vegan"}}) == 2
    assert await client.recipe.count(take=2, order_by={"id": "asc"}) == 2
    assert await client.recipe.count(select={"_all": True, "cook_time_minutes": True}) == {"_all": 3, "cook_time_minutes": 1}
