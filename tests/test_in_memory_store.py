from datetime import datetime, timedelta, timezone

import pytest

from docqueue.core.errors import IndexConflictError
from docqueue.server.storage.matching import matches, sort_documents


class TestMatching:
    def test_nested_paths_and_ranges(self):
        document = {"payload": {"one": {"two": {"three": 5}}}}

        assert matches(document, {"payload.one.two.three": {"$gt": 4}})
        assert matches(document, {"payload.one.two.three": {"$gte": 5, "$lt": 6}})
        assert not matches(document, {"payload.one.two.three": {"$lt": 5}})
        assert not matches(document, {"payload.one.two.missing": {"$gt": 0}})

    def test_booleans_are_not_numbers(self):
        document = {"payload": {"flag": True, "count": 1}}

        assert matches(document, {"payload.flag": True})
        assert not matches(document, {"payload.flag": 1})
        assert not matches(document, {"payload.count": True})
        assert not matches(document, {"payload.count": {"$gt": False}})

    def test_arrays_match_their_elements(self):
        document = {"payload": {"tags": ["a", "b"], "items": [{"n": 1}, {"n": 7}]}}

        assert matches(document, {"payload.tags": "b"})
        assert matches(document, {"payload.tags": ["a", "b"]})
        assert matches(document, {"payload.items.n": {"$gt": 5}})
        assert not matches(document, {"payload.tags": "c"})

    def test_set_operators_and_existence(self):
        document = {"payload": {"kind": "email"}}

        assert matches(document, {"payload.kind": {"$in": ["sms", "email"]}})
        assert matches(document, {"payload.kind": {"$nin": ["sms"]}})
        assert matches(document, {"payload.kind": {"$exists": True}})
        assert matches(document, {"payload.other": {"$exists": False}})
        assert matches(document, {"payload.other": None})
        assert matches(document, {"payload.kind": {"$ne": "sms"}})

    def test_logical_operators(self):
        document = {"payload": {"a": 1, "b": 2}}

        assert matches(document, {"$or": [{"payload.a": 5}, {"payload.b": 2}]})
        assert not matches(document, {"$and": [{"payload.a": 1}, {"payload.b": 3}]})
        assert matches(document, {"$nor": [{"payload.a": 5}]})

    def test_unsupported_operator(self):
        with pytest.raises(ValueError):
            matches({"payload": {}}, {"payload.a": {"$regex": "x"}})

    def test_datetime_ranges(self):
        now = datetime.now(timezone.utc)
        document = {"earliestGet": now - timedelta(seconds=1)}

        assert matches(document, {"earliestGet": {"$lte": now}})
        assert not matches(document, {"earliestGet": {"$lte": now - timedelta(seconds=2)}})

    def test_sort_is_stable_across_keys(self):
        documents = [
            {"n": 1, "priority": 0.5, "created": 1},
            {"n": 2, "priority": 0.1, "created": 2},
            {"n": 3, "priority": 0.5, "created": 0},
            {"n": 4, "priority": 0.1, "created": 2},
        ]

        ordered = sort_documents(documents, [("priority", 1), ("created", 1)])
        assert [d["n"] for d in ordered] == [2, 4, 3, 1]

        ordered = sort_documents(documents, [("priority", -1), ("created", 1)])
        assert [d["n"] for d in ordered] == [3, 1, 2, 4]


class TestInMemoryCollection:
    @pytest.mark.asyncio
    async def test_find_one_and_update_returns_before_or_after(self, collection):
        document_id = await collection.insert_one({"running": False, "n": 1})

        before = await collection.find_one_and_update(
            {"_id": document_id}, {"$set": {"running": True}}
        )
        after = await collection.find_one_and_update(
            {"_id": document_id},
            {"$set": {"n": 2}},
            projection={"n": 1},
            return_updated=True,
        )

        assert before == {"_id": document_id, "running": False, "n": 1}
        assert after == {"_id": document_id, "n": 2}

    @pytest.mark.asyncio
    async def test_find_one_and_update_follows_sort(self, collection):
        await collection.insert_one({"priority": 0.5})
        await collection.insert_one({"priority": 0.1})

        claimed = await collection.find_one_and_update(
            {}, {"$set": {"taken": True}}, sort=[("priority", 1)], return_updated=True
        )

        assert claimed["priority"] == 0.1
        assert await collection.count_documents({"taken": True}) == 1

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, collection):
        await collection.insert_one({"payload": {"key": 1}})

        found = await collection.find_one({})
        found["payload"]["key"] = 2

        assert (await collection.find_one({}))["payload"]["key"] == 1

    @pytest.mark.asyncio
    async def test_dotted_set_and_delete(self, collection):
        document_id = await collection.insert_one({"payload": {"a": 1}})

        assert await collection.update_one({"_id": document_id}, {"$set": {"payload.b": 2}}) == 1
        assert (await collection.find_one({}))["payload"] == {"a": 1, "b": 2}
        assert await collection.delete_one({"_id": document_id}) == 1
        assert await collection.delete_one({"_id": document_id}) == 0

    @pytest.mark.asyncio
    async def test_index_conflicts(self, collection):
        await collection.create_index([("a", 1)], "idx_a")

        with pytest.raises(IndexConflictError):
            await collection.create_index([("b", 1)], "idx_a")
        with pytest.raises(IndexConflictError):
            await collection.create_index([("a", 1)], "other")

        await collection.drop_index("idx_a")
        assert list(await collection.index_information()) == ["_id_"]
