from decimal import Decimal

import pytest

from recipebook.services.async_error_handler import ValidationError


@pytest.mark.asyncio
async def test_aggregate(client, catalog):
    result = await client.recipe.aggregate(
        _count=True,
        _sum={"prep_time_minutes": True},
        _avg={"prep_time_minutes": True},
        _min={"prep_time_minutes": True, "name": True},
        _max={"prep_time_minutes": True},
    )
    assert result == {
        "_count": {"_all": 3},
        "_sum": {"prep_time_minutes": 45},
        "_avg": {"prep_time_minutes": 15.0},
        "_min": {"prep_time_minutes": 10, "name": "Bread"},
        "_max": {"prep_time_minutes": 20},
    }


@pytest.mark.asyncio
async def test_decimal_average_keeps_column_scale(client, catalog):
    result = await client.unit_quantity.aggregate(where={"unit_id": catalog["gram"]["id"]}, _avg={"quantity": True})
    assert result["_avg"]["quantity"] == Decimal("533.333")
    assert result["_avg"]["quantity"].as_tuple().exponent == -3


@pytest.mark.asyncio
async def test_aggregate_over_no_rows(client, catalog):
    result = await client.recipe.aggregate(where={"name": "Pizza"}, _count={"cook_time_minutes": True}, _sum={"prep_time_minutes": True})
    assert result == {"_count": {"cook_time_minutes": 0}, "_sum": {"prep_time_minutes": None}}


@pytest.mark.asyncio
async def test_aggregate_respects_pagination(client, catalog):
    result = await client.recipe.aggregate(order_by={"prep_time_minutes": "asc"}, take=2, _sum={"prep_time_minutes": True})
    assert result["_sum"]["prep_time_minutes"] == 25
    missing_cursor = await client.recipe.aggregate(cursor={"id": 999}, _count=True)
    assert missing_cursor == {"_count": {"_all": 0}}


@pytest.mark.asyncio
async def test_aggregate_rejects_non_numeric_sum(client, catalog):
    with pytest.raises(ValidationError):
        await client.recipe.aggregate(_sum={"name": True})


@pytest.mark.asyncio
async def test_group_by(client, catalog):
    groups = await client.recipe.group_by(
        by=["category_id"],
        _count={"_all": True},
        _max={"prep_time_minutes": True},
        order_by={"category_id": "asc"},
    )
    assert groups == [
        {"category_id": catalog["baking"]["id"], "_count": {"_all": 2}, "_max": {"prep_time_minutes": 20}},
        {"category_id": catalog["soups"]["id"], "_count": {"_all": 1}, "_max": {"prep_time_minutes": 15}},
    ]


@pytest.mark.asyncio
async def test_group_by_having_and_aggregate_ordering(client, catalog):
    groups = await client.recipe.group_by(
        by=["category_id"],
        _count={"_all": True},
        having={"prep_time_minutes": {"_max": {"gt": 15}}},
    )
    assert [group["category_id"] for group in groups] == [catalog["baking"]["id"]]

    ordered = await client.recipe.group_by(by=["category_id"], _count={"_all": True}, order_by={"_count": {"_all": "asc"}}, take=1)
    assert ordered[0]["category_id"] == catalog["soups"]["id"]


@pytest.mark.asyncio
async def test_group_by_validation(client, catalog):
    with pytest.raises(ValidationError, match="must be included in `by`"):
        await client.recipe.group_by(by=["category_id"], having={"name": "Bread"})
    with pytest.raises(ValidationError, match="order_by"):
        await client.recipe.group_by(by=["category_id"], take=1)
    with pytest.raises(ValidationError):
        await client.recipe.group_by(by=["tags"])
