import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import OperationFailure

from docqueue.core.errors import IndexConflictError
from docqueue.core.interfaces import IMessageCollection, IndexKeys

logger = logging.getLogger(__name__)

# IndexOptionsConflict, IndexKeySpecsConflict
INDEX_CONFLICT_CODES = (85, 86)


def connect(mongo_url: str) -> AsyncMongoClient:
    logger.info(f"Connecting to MongoDB at {mongo_url}")
    return AsyncMongoClient(mongo_url, tz_aware=True)


class MongoMessageCollection(IMessageCollection):
    """IMessageCollection backed by a pymongo AsyncCollection."""

    def __init__(self, collection: AsyncCollection):
        self.collection = collection

    @classmethod
    def from_client(
        cls, client: AsyncMongoClient, database: str, name: str
    ) -> "MongoMessageCollection":
        return cls(client[database][name])

    @property
    def full_name(self) -> str:
        return self.collection.full_name

    async def insert_one(self, document: Mapping[str, Any]) -> Any:
        result = await self.collection.insert_one(dict(document))
        return result.inserted_id

    async def find_one(
        self,
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one(filter, projection)

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        return_updated: bool = False,
    ) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one_and_update(
            filter,
            update,
            projection=projection,
            sort=list(sort) if sort else None,
            return_document=ReturnDocument.AFTER
            if return_updated
            else ReturnDocument.BEFORE,
        )

    async def update_one(
        self, filter: Mapping[str, Any], update: Mapping[str, Any]
    ) -> int:
        result = await self.collection.update_one(filter, update)
        return result.matched_count

    async def update_many(
        self, filter: Mapping[str, Any], update: Mapping[str, Any]
    ) -> int:
        result = await self.collection.update_many(filter, update)
        return result.modified_count

    async def delete_one(self, filter: Mapping[str, Any]) -> int:
        result = await self.collection.delete_one(filter)
        return result.deleted_count

    async def count_documents(self, filter: Mapping[str, Any]) -> int:
        return await self.collection.count_documents(filter)

    async def index_information(self) -> Dict[str, Dict[str, Any]]:
        return await self.collection.index_information()

    async def create_index(self, keys: IndexKeys, name: str) -> str:
        try:
            return await self.collection.create_index(
                list(keys), name=name, background=True
            )
        except OperationFailure as e:
            if e.code in INDEX_CONFLICT_CODES:
                raise IndexConflictError(str(e)) from e
            raise

    async def drop_index(self, name: str):
        await self.collection.drop_index(name)

    async def drop(self):
        await self.collection.drop()
