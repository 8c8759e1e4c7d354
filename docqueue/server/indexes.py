import hashlib
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from docqueue.core.codec import payload_path
from docqueue.core.errors import IndexConflictError, IndexSetupError
from docqueue.core.interfaces import IMessageCollection, IndexKeys
from docqueue.core.validation import require_bool, require_index_keys

logger = logging.getLogger(__name__)

GET_FAMILY = "g"
COUNT_FAMILY = "c"
RESET_FAMILY = "r"

MAX_NAME_ATTEMPTS = 5
# MongoDB builds the index namespace as <db>.<collection>.$<index name>
NAMESPACE_SEPARATOR = ".$"
DEFAULT_MAX_NAMESPACE_LENGTH = 127


def _key_list(info: Dict[str, Any]) -> List[Tuple[str, Any]]:
    return [(field, direction) for field, direction in info["key"]]


def _is_prefix(prefix: IndexKeys, keys: IndexKeys) -> bool:
    return len(prefix) <= len(keys) and list(keys[: len(prefix)]) == list(prefix)


def _is_count_shape(keys: IndexKeys) -> bool:
    """Payload fields, optionally behind running; names may be bare digests."""
    fields = [field for field, _ in keys]
    if fields[:1] == ["running"]:
        fields = fields[1:]
    return bool(fields) and all(field.startswith("payload.") for field in fields)


class IndexManager:
    """Maintains the indexes behind claiming (get) and counting.

    Get indexes follow equality-sort-range order: equality fields the caller
    filters on, then the ``priority``/``created`` sort, then range fields, with
    ``earliestGet`` last. Count indexes are the payload fields, optionally
    behind ``running``. A requested index is skipped when it is a prefix of an
    index that already exists.
    """

    def __init__(
        self,
        collection: IMessageCollection,
        max_namespace_length: int = DEFAULT_MAX_NAMESPACE_LENGTH,
    ):
        self.collection = collection
        self.max_namespace_length = max_namespace_length

    async def ensure_get_index(
        self,
        before_sort_keys: Mapping[str, int],
        after_sort_keys: Optional[Mapping[str, int]] = None,
    ):
        if after_sort_keys is None:
            after_sort_keys = {}
        require_index_keys("before_sort_keys", before_sort_keys)
        require_index_keys("after_sort_keys", after_sort_keys)

        keys: IndexKeys = [("running", 1)]
        keys.extend((payload_path(field), d) for field, d in before_sort_keys.items())
        keys.extend([("priority", 1), ("created", 1)])
        keys.extend((payload_path(field), d) for field, d in after_sort_keys.items())
        keys.append(("earliestGet", 1))

        await self._ensure_index(keys, GET_FAMILY)
        # lease recovery sweep
        await self._ensure_index([("running", 1), ("resetTimestamp", 1)], RESET_FAMILY)

    async def ensure_count_index(self, keys: Mapping[str, int], include_running: bool):
        require_index_keys("keys", keys)
        require_bool("include_running", include_running)

        index: IndexKeys = [("running", 1)] if include_running else []
        index.extend((payload_path(field), d) for field, d in keys.items())

        created = await self._ensure_index(index, COUNT_FAMILY)
        if created:
            await self._drop_superseded(index, created)

    def _max_name_length(self) -> int:
        return (
            self.max_namespace_length
            - len(self.collection.full_name)
            - len(NAMESPACE_SEPARATOR)
        )

    @staticmethod
    def _index_name(keys: IndexKeys, family: str, attempt: int, max_length: int) -> str:
        source = repr(list(keys)) + (f"#{attempt}" if attempt else "")
        digest = hashlib.sha1(source.encode("utf-8")).hexdigest()
        prefix = f"dq{family}_"
        if len(prefix) < max_length:
            return (prefix + digest)[:max_length]
        return digest[:max_length]

    @staticmethod
    def _covered(keys: IndexKeys, existing: Dict[str, Dict[str, Any]]) -> bool:
        return any(_is_prefix(keys, _key_list(info)) for info in existing.values())

    async def _ensure_index(self, keys: IndexKeys, family: str) -> Optional[str]:
        """Creates the index unless one already covers it; returns the new name."""
        max_length = self._max_name_length()
        if max_length < 1:
            raise IndexSetupError(
                f"Namespace {self.collection.full_name} leaves no room for an index "
                f"name within {self.max_namespace_length} characters"
            )

        if self._covered(keys, await self.collection.index_information()):
            return None

        for attempt in range(MAX_NAME_ATTEMPTS):
            name = self._index_name(keys, family, attempt, max_length)
            try:
                await self.collection.create_index(keys, name)
            except IndexConflictError:
                # another caller may have created the same keys concurrently
                if self._covered(keys, await self.collection.index_information()):
                    return None
                continue
            logger.info(f"Created index {name} on {self.collection.full_name}: {keys}")
            return name

        raise IndexSetupError(
            f"Could not create index {keys} on {self.collection.full_name} "
            f"after {MAX_NAME_ATTEMPTS} attempts"
        )

    async def _drop_superseded(self, keys: IndexKeys, created: str):
        for name, info in (await self.collection.index_information()).items():
            existing = _key_list(info)
            if (
                name != created
                and _is_count_shape(existing)
                and len(existing) < len(keys)
                and _is_prefix(existing, keys)
            ):
                logger.info(f"Dropping count index {name}, superseded by {created}")
                await self.collection.drop_index(name)
