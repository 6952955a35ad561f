# tests/memory/test_memory_matching.py

import re
from datetime import datetime, timezone

import pytest
from bson import ObjectId

from async_docstore.base.exceptions import StoreError


@pytest.fixture
async def catalog(memory_store):
    items = [
        {"sku": "a1", "price": 10, "tags": ["red", "small"], "stock": {"warehouse": 5}},
        {"sku": "b2", "price": 25, "tags": ["blue"], "stock": {"warehouse": 0}},
        {"sku": "c3", "price": 40, "tags": [], "discontinued": True},
        {"sku": "d4", "price": None, "tags": ["red"]},
    ]
    for item in items:
        await memory_store.save("items", None, item)
    return memory_store


async def skus(store, query, sort="sku"):
    return [d["sku"] for d in await store.find("items", query, {"sort": sort})]


async def test_equality_matches_array_members(catalog):
    assert await skus(catalog, {"tags": "red"}) == ["a1", "d4"]


async def test_equality_with_whole_array(catalog):
    assert await skus(catalog, {"tags": ["blue"]}) == ["b2"]


async def test_none_matches_missing_and_null(catalog):
    assert await skus(catalog, {"discontinued": None}) == ["a1", "b2", "d4"]
    assert await skus(catalog, {"price": None}) == ["d4"]


async def test_dotted_paths(catalog):
    assert await skus(catalog, {"stock.warehouse": {"$gt": 0}}) == ["a1"]


@pytest.mark.parametrize(
    "condition, expected",
    [
        ({"$gt": 10}, ["b2", "c3"]),
        ({"$gte": 25}, ["b2", "c3"]),
        ({"$lt": 25}, ["a1"]),
        ({"$lte": 25}, ["a1", "b2"]),
        ({"$ne": 10}, ["b2", "c3", "d4"]),
        ({"$eq": 40}, ["c3"]),
        ({"$in": [10, 40]}, ["a1", "c3"]),
        ({"$nin": [10, 40]}, ["b2", "d4"]),
        ({"$gt": 5, "$lt": 30}, ["a1", "b2"]),
        ({"$not": {"$gt": 20}}, ["a1", "d4"]),
    ],
)
async def test_comparison_operators(catalog, condition, expected):
    assert await skus(catalog, {"price": condition}) == expected


async def test_comparisons_across_types_never_match(catalog):
    assert await skus(catalog, {"price": {"$gt": "a"}}) == []


async def test_exists(catalog):
    assert await skus(catalog, {"discontinued": {"$exists": True}}) == ["c3"]
    assert await skus(catalog, {"stock": {"$exists": False}}) == ["c3", "d4"]


async def test_regex_with_options(catalog):
    assert await skus(catalog, {"sku": {"$regex": "^[AB]", "$options": "i"}}) == ["a1", "b2"]
    assert await skus(catalog, {"sku": {"$regex": re.compile("3$")}}) == ["c3"]


async def test_logical_operators(catalog):
    assert await skus(catalog, {"$and": [{"tags": "red"}, {"price": 10}]}) == ["a1"]
    assert await skus(catalog, {"$or": [{"sku": "a1"}, {"price": 40}]}) == ["a1", "c3"]
    assert await skus(catalog, {"$nor": [{"sku": "a1"}, {"price": 40}]}) == ["b2", "d4"]


async def test_null_sorts_first_ascending(catalog):
    assert await skus(catalog, {}, sort="price") == ["d4", "a1", "b2", "c3"]
    assert await skus(catalog, {}, sort="-price") == ["c3", "b2", "a1", "d4"]


async def test_arrays_sort_by_smallest_or_largest_member(catalog):
    assert await skus(catalog, {}, sort="tags") == ["c3", "b2", "a1", "d4"]
    assert await skus(catalog, {}, sort="-tags") == ["a1", "d4", "b2", "c3"]


async def test_sorts_object_ids_and_datetimes(memory_store):
    early, late = ObjectId("000000000000000000000001"), ObjectId("000000000000000000000002")
    await memory_store.save("events", late, {"at": datetime(2024, 5, 1, tzinfo=timezone.utc)})
    await memory_store.save("events", early, {"at": datetime(2023, 5, 1)})
    by_id = await memory_store.find("events", {}, {"sort": "_id"})
    by_time = await memory_store.find("events", {}, {"sort": "-at"})
    assert [d["_id"] for d in by_id] == [early, late]
    assert [d["_id"] for d in by_time] == [late, early]


@pytest.mark.parametrize(
    "query",
    [
        {"price": {"$bogus": 1}},
        {"$where": "true"},
        {"$or": []},
        {"price": {"$in": 10}},
        {"sku": {"$regex": "("}},
    ],
)
async def test_invalid_queries_raise_store_error(catalog, query):
    with pytest.raises(StoreError) as exc_info:
        await catalog.find("items", query)
    assert exc_info.value.operation == "find"
    assert exc_info.value.collection == "items"


async def test_update_cannot_change_identifier(memory_store):
    doc_id = await memory_store.save("items", None, {"sku": "x"})
    with pytest.raises(StoreError):
        await memory_store.find_one_and_update("items", {"_id": doc_id}, {"_id": ObjectId()})


async def test_upsert_copies_and_and_eq_fields(memory_store):
    created = await memory_store.find_one_and_update(
        "items",
        {"$and": [{"sku": "z9"}, {"price": {"$eq": 3}}], "tags": {"$in": ["x"]}},
        {"new": True},
        upsert=True,
    )
    assert created["sku"] == "z9"
    assert created["price"] == 3
    assert "tags" not in created
    assert created["new"] is True


async def test_memory_url_database_name(memory_store):
    assert memory_store.database_name == "pytest"
