import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from bson import ObjectId

from docqueue.core.codec import payload_of, to_filter, to_message
from docqueue.core.interfaces import IMessageCollection
from docqueue.core.models import (
    MONGO_INT32_MAX,
    RESET_SENTINEL,
    QueuedDocument,
    to_datetime,
)
from docqueue.core.validation import (
    require_bool,
    require_integer,
    require_message_id,
    require_non_negative_integer,
    require_optional_bool,
    require_priority,
    require_string_keys,
)
from docqueue.server.indexes import DEFAULT_MAX_NAMESPACE_LENGTH, IndexManager

logger = logging.getLogger(__name__)

DEFAULT_POLL_DURATION_MS = 50

# created has millisecond precision in MongoDB; _id breaks ties in send order
CLAIM_SORT = [("priority", 1), ("created", 1), ("_id", 1)]

ResetCallback = Callable[[Dict[str, Any]], Any]


def _lease_deadline(duration: int) -> datetime:
    return to_datetime(time.time() + min(duration, MONGO_INT32_MAX))


class DocumentQueue:
    """Priority work queue over a document collection.

    All mutual exclusion comes from the collection's atomic
    find_one_and_update; the queue itself holds no locks, so any number of
    workers may share one collection.
    """

    def __init__(
        self,
        collection: IMessageCollection,
        default_poll_ms: int = DEFAULT_POLL_DURATION_MS,
        max_namespace_length: int = DEFAULT_MAX_NAMESPACE_LENGTH,
    ):
        self.collection = collection
        self.default_poll_ms = default_poll_ms
        self.indexes = IndexManager(collection, max_namespace_length)

    async def ensure_get_index(
        self,
        before_sort_keys: Mapping[str, int],
        after_sort_keys: Optional[Mapping[str, int]] = None,
    ):
        await self.indexes.ensure_get_index(before_sort_keys, after_sort_keys)

    async def ensure_count_index(self, keys: Mapping[str, int], include_running: bool):
        await self.indexes.ensure_count_index(keys, include_running)

    async def get(
        self,
        query: Mapping[str, Any],
        running_reset_duration: int,
        wait_duration: int = 0,
        poll_duration: Optional[int] = None,
        reset_callback: Optional[ResetCallback] = None,
    ) -> Optional[Dict[str, Any]]:
        """Claims the next eligible message matching ``query``.

        Args:
            query: Payload fields to match, e.g. ``{"type": "email"}`` or
                ``{"attempts": {"$gt": 2}}``; dotted paths reach sub-documents.
            running_reset_duration: Seconds the claim stays valid.
            wait_duration: Milliseconds to keep polling when nothing is eligible.
            poll_duration: Milliseconds between polls; None or non-positive
                uses the queue default.
            reset_callback: Called with each stored document whose expired
                lease gets released while looking for a message.

        Returns:
            The message as ``{"id": ..., **payload}``, or None.
        """
        require_string_keys("query", query)
        require_non_negative_integer("running_reset_duration", running_reset_duration)
        require_non_negative_integer("wait_duration", wait_duration)
        if poll_duration is not None:
            require_integer("poll_duration", poll_duration)
        if poll_duration is None or poll_duration <= 0:
            poll_duration = self.default_poll_ms

        claim_filter = to_filter(query, running=False)
        deadline = time.monotonic() + wait_duration / 1000.0

        while True:
            await self.reset_stuck(reset_callback)

            now = datetime.now(timezone.utc)
            claim_filter["earliestGet"] = {"$lte": now}
            document = await self.collection.find_one_and_update(
                claim_filter,
                {
                    "$set": {
                        "running": True,
                        "resetTimestamp": _lease_deadline(running_reset_duration),
                    }
                },
                sort=CLAIM_SORT,
                projection={"payload": 1},
                return_updated=True,
            )
            if document is not None:
                logger.debug(f"Claimed message {document['_id']}")
                return to_message(document)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(poll_duration / 1000.0, remaining))

    async def reset_stuck(self, reset_callback: Optional[ResetCallback] = None) -> int:
        """Releases every lease whose deadline has passed."""
        stuck = {"running": True, "resetTimestamp": {"$lte": datetime.now(timezone.utc)}}
        release = {"$set": {"running": False, "resetTimestamp": RESET_SENTINEL}}

        if reset_callback is None:
            released = await self.collection.update_many(stuck, release)
        else:
            released = 0
            while True:
                document = await self.collection.find_one_and_update(stuck, release)
                if document is None:
                    break
                released += 1
                result = reset_callback(document)
                if inspect.isawaitable(result):
                    await result

        if released:
            logger.debug(f"Released {released} expired leases on {self.collection.full_name}")
        return released

    async def count(self, query: Mapping[str, Any], running: Optional[bool] = None) -> int:
        require_string_keys("query", query)
        require_optional_bool("running", running)
        return await self.collection.count_documents(to_filter(query, running))

    async def send(
        self,
        payload: Mapping[str, Any],
        earliest_get: Optional[int] = None,
        priority: float = 0.0,
    ) -> ObjectId:
        """Enqueues a message; earliest_get (epoch seconds) defaults to now."""
        require_string_keys("payload", payload)
        if earliest_get is not None:
            require_integer("earliest_get", earliest_get)
        priority = require_priority(priority)

        now = datetime.now(timezone.utc)
        document = QueuedDocument(
            payload=dict(payload),
            earliest_get=now if earliest_get is None else to_datetime(earliest_get),
            priority=priority,
            created=now,
        )
        return await self.collection.insert_one(document.to_document())

    async def ack(self, message: Mapping[str, Any]) -> bool:
        message_id = require_message_id(message)
        return await self.collection.delete_one({"_id": message_id}) > 0

    async def ack_send(
        self,
        message: Mapping[str, Any],
        payload: Mapping[str, Any],
        earliest_get: int = 0,
        priority: float = 0.0,
        new_timestamp: bool = True,
    ) -> bool:
        """Atomically acks ``message`` and re-enqueues ``payload`` under the same id.

        With ``new_timestamp`` False the original ``created`` is kept, so the
        message keeps its place among equal priorities.
        """
        message_id = require_message_id(message)
        require_string_keys("payload", payload)
        require_integer("earliest_get", earliest_get)
        priority = require_priority(priority)
        require_bool("new_timestamp", new_timestamp)

        fields = {
            "payload": dict(payload),
            "running": False,
            "resetTimestamp": RESET_SENTINEL,
            "earliestGet": to_datetime(earliest_get),
            "priority": priority,
        }
        if new_timestamp:
            fields["created"] = datetime.now(timezone.utc)

        matched = await self.collection.update_one({"_id": message_id}, {"$set": fields})
        if not matched:
            logger.warning(f"ack_send: message {message_id} no longer exists")
        return matched > 0

    async def requeue(
        self,
        message: Mapping[str, Any],
        earliest_get: int = 0,
        priority: float = 0.0,
        new_timestamp: bool = True,
    ) -> bool:
        require_message_id(message)
        return await self.ack_send(
            message, payload_of(message), earliest_get, priority, new_timestamp
        )

    async def update_reset_duration(
        self, message: Mapping[str, Any], reset_duration: int
    ) -> bool:
        """Moves the lease deadline of a claimed message to now + reset_duration."""
        message_id = require_message_id(message)
        require_non_negative_integer("reset_duration", reset_duration)

        matched = await self.collection.update_one(
            {"_id": message_id, "running": True},
            {"$set": {"resetTimestamp": _lease_deadline(reset_duration)}},
        )
        if not matched:
            logger.warning(f"update_reset_duration: message {message_id} is not running")
        return matched > 0
