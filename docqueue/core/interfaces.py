from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

IndexKeys = List[Tuple[str, Any]]


class IMessageCollection(ABC):
    """Document collection primitives the queue engine is built on."""

    @property
    @abstractmethod
    def full_name(self) -> str:
        """Namespace of the collection, ``<database>.<collection>``."""
        pass

    @abstractmethod
    async def insert_one(self, document: Mapping[str, Any]) -> Any:
        """Inserts a document and returns its _id."""
        pass

    @abstractmethod
    async def find_one(
        self,
        filter: Mapping[str, Any],
        projection: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        return_updated: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Atomically selects the first match in ``sort`` order and updates it.

        Returns the document as it was before the update unless
        ``return_updated`` is set, or None when nothing matched.
        """
        pass

    @abstractmethod
    async def update_one(
        self, filter: Mapping[str, Any], update: Mapping[str, Any]
    ) -> int:
        """Returns the number of matched documents."""
        pass

    @abstractmethod
    async def update_many(
        self, filter: Mapping[str, Any], update: Mapping[str, Any]
    ) -> int:
        """Returns the number of modified documents."""
        pass

    @abstractmethod
    async def delete_one(self, filter: Mapping[str, Any]) -> int:
        """Returns the number of deleted documents."""
        pass

    @abstractmethod
    async def count_documents(self, filter: Mapping[str, Any]) -> int:
        pass

    @abstractmethod
    async def index_information(self) -> Dict[str, Dict[str, Any]]:
        """Maps index name to ``{"key": [(field, direction), ...]}`` in creation order."""
        pass

    @abstractmethod
    async def create_index(self, keys: IndexKeys, name: str) -> str:
        """Creates an index, raising IndexConflictError on a name or key clash."""
        pass

    @abstractmethod
    async def drop_index(self, name: str):
        pass

    @abstractmethod
    async def drop(self):
        pass
