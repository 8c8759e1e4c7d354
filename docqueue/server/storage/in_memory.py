import asyncio
import copy
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from bson import ObjectId

from docqueue.core.errors import IndexConflictError
from docqueue.core.interfaces import IMessageCollection, IndexKeys
from docqueue.server.storage.matching import (
    apply_update,
    matches,
    project,
    sort_documents,
)


class InMemoryMessageCollection(IMessageCollection):
    """Single-process stand-in for a MongoDB collection.

    Every operation runs under one lock, which gives find_one_and_update the
    same per-document atomicity the queue relies on from MongoDB.
    """

    def __init__(self, database: str = "docqueue", name: str = "messages"):
        self._full_name = f"{database}.{name}"
        # _id -> document, in insertion order
        self._documents: Dict[ObjectId, Dict[str, Any]] = {}
        self._indexes: Dict[str, IndexKeys] = {"_id_": [("_id", 1)]}
        self._lock = asyncio.Lock()

    @property
    def full_name(self) -> str:
        return self._full_name

    def _matching(
        self,
        filter: Mapping[str, Any],
        sort: Optional[Sequence[Tuple[str, int]]] = None,
    ) -> List[Dict[str, Any]]:
        found = [doc for doc in self._documents.values() if matches(doc, filter)]
        return sort_documents(found, sort) if sort else found

    async def insert_one(self, document: Mapping[str, Any]) -> Any:
        async with self._lock:
            stored = copy.deepcopy(dict(document))
            stored.setdefault("_id", ObjectId())
            if stored["_id"] in self._documents:
                raise ValueError(f"Duplicate _id: {stored['_id']}")
            self._documents[stored["_id"]] = stored
            return stored["_id"]

    async def find_one(
        self,
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            found = self._matching(filter)
            if not found:
                return None
            return copy.deepcopy(project(found[0], projection))

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        return_updated: bool = False,
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            found = self._matching(filter, sort)
            if not found:
                return None
            document = found[0]
            before = copy.deepcopy(document)
            apply_update(document, update)
            result = document if return_updated else before
            return copy.deepcopy(project(result, projection))

    async def update_one(
        self, filter: Mapping[str, Any], update: Mapping[str, Any]
    ) -> int:
        async with self._lock:
            found = self._matching(filter)
            if not found:
                return 0
            apply_update(found[0], update)
            return 1

    async def update_many(
        self, filter: Mapping[str, Any], update: Mapping[str, Any]
    ) -> int:
        async with self._lock:
            found = self._matching(filter)
            for document in found:
                apply_update(document, update)
            return len(found)

    async def delete_one(self, filter: Mapping[str, Any]) -> int:
        async with self._lock:
            found = self._matching(filter)
            if not found:
                return 0
            del self._documents[found[0]["_id"]]
            return 1

    async def count_documents(self, filter: Mapping[str, Any]) -> int:
        async with self._lock:
            return len(self._matching(filter))

    async def index_information(self) -> Dict[str, Dict[str, Any]]:
        async with self._lock:
            return {name: {"key": list(keys)} for name, keys in self._indexes.items()}

    async def create_index(self, keys: IndexKeys, name: str) -> str:
        keys = [(field, direction) for field, direction in keys]
        async with self._lock:
            for existing_name, existing_keys in self._indexes.items():
                if existing_name == name and existing_keys != keys:
                    raise IndexConflictError(
                        f"Index {name} already exists with a different key spec"
                    )
                if existing_name != name and existing_keys == keys:
                    raise IndexConflictError(
                        f"Index with the same key spec already exists as {existing_name}"
                    )
            self._indexes[name] = keys
            return name

    async def drop_index(self, name: str):
        async with self._lock:
            if name == "_id_" or name not in self._indexes:
                raise ValueError(f"Cannot drop index {name}")
            del self._indexes[name]

    async def drop(self):
        async with self._lock:
            self._documents.clear()
            self._indexes = {"_id_": [("_id", 1)]}
