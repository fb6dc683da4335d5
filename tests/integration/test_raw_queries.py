import pytest

from recipebook.services.async_error_handler import UnknownRequestError


@pytest.mark.asyncio
async def test_query_raw(client, catalog):
    rows = await client.query_raw("SELECT name FROM categories ORDER BY name")
    assert rows == [{"name": "Baking"}, {"name": "Soups"}]


@pytest.mark.asyncio
async def test_execute_raw_with_parameters(client, catalog):
    updated = await client.execute_raw(
        "UPDATE recipes SET cook_time_minutes = :minutes WHERE cook_time_minutes IS NULL",
        {"minutes": 5},
    )
    assert updated == 2
    assert await client.recipe.count(where={"cook_time_minutes": 5}) == 2


@pytest.mark.asyncio
async def test_raw_inside_transaction(client, catalog):
    async def rename(tx):
        await tx.execute_raw("UPDATE categories SET name = 'Bakery' WHERE name = 'Baking'")
        return await tx.query_raw("SELECT count(*) AS total FROM categories WHERE name = 'Bakery'")

    assert await client.transaction(rename) == [{"total": 1}]


@pytest.mark.asyncio
async def test_invalid_sql(client):
    with pytest.raises(UnknownRequestError) as exc_info:
        await client.query_raw("SELEC name FROM categories")
    assert exc_info.value.invocation == "query_raw()"


@pytest.mark.asyncio
async def test_reconnect_after_disconnect(client):
    await client.disconnect()
    assert client.db.async_engine is None
    await client.connect()
    assert await client.query_raw("SELECT 1 AS one") == [{"one": 1}]
