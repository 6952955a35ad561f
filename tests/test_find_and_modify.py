# tests/test_find_and_modify.py

from bson import ObjectId

from tests.conftest import PEOPLE


# =============================================================================
# find_one_and_update
# =============================================================================


async def test_update_merges_fields(store, collection, logger):
    doc_id = await store.save(collection, None, {"n": 0, "m": 2})

    updated = await store.find_one_and_update(
        collection, {"_id": doc_id}, {"n": 1}, upsert=False, logger=logger
    )
    assert updated == {"_id": doc_id, "n": 1, "m": 2}
    assert await store.find_one(collection, {"_id": doc_id}) == updated


async def test_update_by_hex_string_id(store, collection):
    doc_id = await store.save(collection, None, {"n": 0})
    updated = await store.find_one_and_update(
        collection, {"_id": store.to_canonical_string(doc_id)}, {"n": 5}
    )
    assert updated["n"] == 5


async def test_update_dotted_field(store, collection):
    doc_id = await store.save(collection, None, {"profile": {"city": "Oslo", "zip": "0150"}})
    updated = await store.find_one_and_update(collection, {"_id": doc_id}, {"profile.city": "Bergen"})
    assert updated["profile"] == {"city": "Bergen", "zip": "0150"}


async def test_update_without_match_returns_none(store, collection, people):
    updated = await store.find_one_and_update(collection, {"name": "Nobody"}, {"n": 1})
    assert updated is None
    assert await store.count(collection) == len(PEOPLE)


async def test_update_with_sort_picks_first_in_order(store, collection, people):
    updated = await store.find_one_and_update(
        collection, {"team": "blue"}, {"captain": True}, sort="age"
    )
    assert updated["name"] == "Eve"
    assert updated["captain"] is True


async def test_upsert_creates_document_when_missing(store, collection):
    new_id = ObjectId()
    created = await store.find_one_and_update(
        collection, {"_id": new_id}, {"n": 1}, upsert=True
    )
    assert created == {"_id": new_id, "n": 1}
    assert await store.count(collection) == 1


async def test_upsert_with_hex_string_id_creates_native_id(store, collection):
    hex_id = "0123456789abcdef01234567"
    created = await store.find_one_and_update(collection, {"_id": hex_id}, {"n": 1}, upsert=True)
    assert created["_id"] == ObjectId(hex_id)


async def test_upsert_generates_id_and_copies_equality_fields(store, collection):
    created = await store.find_one_and_update(
        collection, {"email": "a@example.com"}, {"n": 1}, upsert=True
    )
    assert isinstance(created["_id"], ObjectId)
    assert created["email"] == "a@example.com"
    assert created["n"] == 1


async def test_upsert_returns_existing_match_unchanged(store, collection):
    doc_id = await store.save(collection, None, {"n": 0, "m": 2})

    result = await store.find_one_and_update(collection, {"_id": doc_id}, {"n": 1}, upsert=True)
    assert result == {"_id": doc_id, "n": 0, "m": 2}
    assert await store.find_one(collection, {"_id": doc_id}) == {"_id": doc_id, "n": 0, "m": 2}


# =============================================================================
# find_one_and_delete
# =============================================================================


async def test_find_one_and_delete(store, collection, people, logger):
    deleted = await store.find_one_and_delete(collection, {"name": "Carol"}, logger=logger)
    assert deleted == 1
    assert await store.find_one(collection, {"name": "Carol"}) is None


async def test_find_one_and_delete_by_string_id(store, collection, people):
    hex_id = store.to_canonical_string(people["Dave"])
    assert await store.find_one_and_delete(collection, {"_id": hex_id}) == 1
    assert await store.count(collection) == len(PEOPLE) - 1


async def test_find_one_and_delete_without_match(store, collection, people):
    assert await store.find_one_and_delete(collection, {"name": "Nobody"}) == 0
    assert await store.count(collection) == len(PEOPLE)


async def test_find_one_and_delete_with_sort(store, collection, people):
    assert await store.find_one_and_delete(collection, {"team": "red"}, sort="-age") == 1
    remaining = await store.find(collection, {"team": "red"})
    assert [d["name"] for d in remaining] == ["Carol"]
