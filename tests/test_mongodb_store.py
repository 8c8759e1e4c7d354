from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import OperationFailure

from docqueue.core.errors import IndexConflictError
from docqueue.server.storage.mongodb import MongoMessageCollection


@pytest.fixture
def pymongo_collection():
    collection = MagicMock()
    collection.full_name = "docqueue.jobs"
    collection.find_one_and_update = AsyncMock(return_value={"_id": 1})
    collection.create_index = AsyncMock(return_value="idx")
    collection.update_one = AsyncMock(return_value=SimpleNamespace(matched_count=1))
    collection.update_many = AsyncMock(
        return_value=SimpleNamespace(modified_count=3)
    )
    collection.delete_one = AsyncMock(return_value=SimpleNamespace(deleted_count=0))
    return collection


@pytest.fixture
def store(pymongo_collection):
    return MongoMessageCollection(pymongo_collection)


class TestMongoMessageCollection:
    def test_full_name(self, store):
        assert store.full_name == "docqueue.jobs"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "return_updated, expected",
        [(True, ReturnDocument.AFTER), (False, ReturnDocument.BEFORE)],
    )
    async def test_find_one_and_update_return_document(
        self, store, pymongo_collection, return_updated, expected
    ):
        result = await store.find_one_and_update(
            {"running": False},
            {"$set": {"running": True}},
            sort=(("priority", 1), ("created", 1)),
            projection={"payload": 1},
            return_updated=return_updated,
        )

        assert result == {"_id": 1}
        pymongo_collection.find_one_and_update.assert_awaited_once_with(
            {"running": False},
            {"$set": {"running": True}},
            projection={"payload": 1},
            sort=[("priority", 1), ("created", 1)],
            return_document=expected,
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", [85, 86])
    async def test_index_conflicts_are_translated(self, store, pymongo_collection, code):
        pymongo_collection.create_index.side_effect = OperationFailure(
            "conflict", code=code
        )

        with pytest.raises(IndexConflictError):
            await store.create_index([("payload.a", 1)], "dqc_x")

    @pytest.mark.asyncio
    async def test_other_index_failures_propagate(self, store, pymongo_collection):
        pymongo_collection.create_index.side_effect = OperationFailure(
            "namespace too long", code=67
        )

        with pytest.raises(OperationFailure):
            await store.create_index([("payload.a", 1)], "dqc_x")

    @pytest.mark.asyncio
    async def test_create_index_passes_name(self, store, pymongo_collection):
        assert await store.create_index((("payload.a", 1),), "dqc_x") == "idx"

        pymongo_collection.create_index.assert_awaited_once_with(
            [("payload.a", 1)], name="dqc_x", background=True
        )

    @pytest.mark.asyncio
    async def test_write_results_are_counts(self, store):
        assert await store.update_one({"_id": 1}, {"$set": {"a": 1}}) == 1
        assert await store.update_many({}, {"$set": {"a": 1}}) == 3
        assert await store.delete_one({"_id": 1}) == 0
