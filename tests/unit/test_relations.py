from types import SimpleNamespace

import pytest

from recipebook.models import Recipe, User
from recipebook.services.async_error_handler import ValidationError
from recipebook.services.query_builder import QueryBuilder, model_info
from recipebook.services.relations import RelationArgs, RelationResolver, Selection, page


def rows(*ids):
    return [SimpleNamespace(id=i) for i in ids]


def ids(items):
    return [item.id for item in items]


def args(**kwargs):
    return RelationArgs(selection=Selection(fields=["id"]), **kwargs)


def test_page_take_and_skip():
    assert ids(page(rows(1, 2, 3, 4), args(skip=1, take=2))) == [2, 3]


def test_page_negative_take_counts_from_the_end():
    assert ids(page(rows(1, 2, 3, 4), args(take=-2))) == [3, 4]
    assert ids(page(rows(1, 2, 3, 4), args(take=-2, skip=1))) == [2, 3]


def test_page_cursor():
    assert ids(page(rows(1, 2, 3, 4), args(cursor={"id": 2}, take=2))) == [2, 3]
    assert ids(page(rows(1, 2, 3, 4), args(cursor={"id": 3}, take=-2))) == [2, 3]
    assert page(rows(1, 2), args(cursor={"id": 9})) == []


@pytest.fixture
def resolver():
    return RelationResolver(QueryBuilder("sqlite"), {"user": {"password": True}})


def test_default_omit_and_override(resolver):
    info = model_info(User)
    assert "password" not in resolver.build_selection(info).fields
    assert "password" in resolver.build_selection(info, omit={"password": False}).fields


def test_select_and_include_are_exclusive(resolver):
    with pytest.raises(ValidationError, match="either use `include` or `select`"):
        resolver.build_selection(model_info(Recipe), select_args={"id": True}, include={"category": True})


def test_select_needs_a_field(resolver):
    with pytest.raises(ValidationError, match="at least one field"):
        resolver.build_selection(model_info(Recipe), select_args={"name": False})


def test_to_one_relation_rejects_pagination(resolver):
    with pytest.raises(ValidationError, match="To-one relations"):
        resolver.build_selection(model_info(Recipe), include={"category": {"take": 1}})


def test_nested_to_many_selection(resolver):
    selection = resolver.build_selection(model_info(Recipe), include={
        "recipe_ingredients": {
            "where": {"quantity": {"gt": 0}},
            "order_by": {"order": "asc"},
            "take": 5,
            "include": {"sub_recipe": {"select": {"id": True, "name": True}}},
        },
    })
    lines = selection.relations["recipe_ingredients"]
    assert lines.take == 5
    assert lines.condition is not None
    assert lines.selection.relations["sub_recipe"].selection.fields == ["id", "name"]


def test_loader_options_only_join_to_one_relations(resolver):
    selection = resolver.build_selection(model_info(Recipe), include={"category": True, "recipe_ingredients": True})
    assert len(resolver.loader_options(model_info(Recipe), selection)) == 1
