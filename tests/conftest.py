"""
Test configuration and fixtures for pytest.

Every test gets its own client over a fresh in-memory SQLite database, so
tests never share rows.
"""

from decimal import Decimal

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import recipebook.models  # noqa
from recipebook.client import RecipeBookClient
from recipebook.db.base_class import Base

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


async def create_client(**overrides) -> RecipeBookClient:
    """Build a client on a new in-memory database with every table created."""
    overrides.setdefault("log", [])
    client = RecipeBookClient(datasource_url=TEST_DATABASE_URL, **overrides)
    async with client.db.async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await client.connect()
    return client


@pytest_asyncio.fixture
async def client():
    client = await create_client()
    yield client
    await client.disconnect()


@pytest_asyncio.fixture
async def catalog(client):
    """
    A small catalog: two units, two categories, three ingredients and three
    recipes, where Bread uses Dough as a sub-recipe.
    """
    gram = await client.unit_of_measure.create(data={"name": "gram", "abbreviation": "g", "type": "WEIGHT"})
    piece = await client.unit_of_measure.create(data={"name": "piece", "abbreviation": "pc", "type": "COUNT"})
    baking = await client.category.create(data={"name": "Baking"})
    soups = await client.category.create(data={"name": "Soups"})
    grains = await client.ingredient_category.create(data={"name": "Grains"})
    flour = await client.ingredient.create(data={"name": "Flour", "ingredient_category_id": grains["id"]})
    water = await client.ingredient.create(data={"name": "Water"})
    tomato = await client.ingredient.create(data={"name": "Tomato"})

    dough = await client.recipe.create(data={
        "name": "Dough",
        "instructions": "Mix flour and water",
        "category_id": baking["id"],
        "tags": ["base"],
        "prep_time_minutes": 10,
    })
    bread = await client.recipe.create(data={
        "name": "Bread",
        "instructions": "Bake the dough",
        "category_id": baking["id"],
        "tags": ["vegan", "baked"],
        "prep_time_minutes": 20,
        "cook_time_minutes": 40,
        "yield_quantity": Decimal("1"),
        "yield_unit_id": piece["id"],
    })
    soup = await client.recipe.create(data={
        "name": "Tomato Soup",
        "instructions": "Simmer",
        "category_id": soups["id"],
        "tags": ["vegan"],
        "prep_time_minutes": 15,
    })

    await client.unit_quantity.create_many(data=[
        {"recipe_id": dough["id"], "ingredient_id": flour["id"], "quantity": Decimal("500"), "unit_id": gram["id"], "order": 0},
        {"recipe_id": dough["id"], "ingredient_id": water["id"], "quantity": Decimal("300"), "unit_id": gram["id"], "order": 1},
        {"recipe_id": bread["id"], "sub_recipe_id": dough["id"], "quantity": Decimal("1"), "unit_id": piece["id"], "order": 0},
        {"recipe_id": soup["id"], "ingredient_id": tomato["id"], "quantity": Decimal("800"), "unit_id": gram["id"], "order": 0},
    ])

    return {
        "gram": gram,
        "piece": piece,
        "baking": baking,
        "soups": soups,
        "grains": grains,
        "flour": flour,
        "water": water,
        "tomato": tomato,
        "dough": dough,
        "bread": bread,
        "soup": soup,
    }


@pytest_asyncio.fixture
async def api_client(client):
    """HTTP client for the API, wired to the test database client."""
    from recipebook.api.deps import get_client
    from recipebook.main import app

    async def override_get_client():
        return client

    app.dependency_overrides[get_client] = override_get_client
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
