import asyncio
import logging
from typing import Dict, Optional

from pymongo import AsyncMongoClient

from docqueue.core.config import QueueConfig
from docqueue.core.interfaces import IMessageCollection
from docqueue.server.engine import DocumentQueue
from docqueue.server.storage.in_memory import InMemoryMessageCollection
from docqueue.server.storage.mongodb import MongoMessageCollection, connect

logger = logging.getLogger(__name__)


class QueueRegistry:
    def __init__(self, config: Optional[QueueConfig] = None):
        self.config = config or QueueConfig()
        self._queues: Dict[str, DocumentQueue] = {}
        self._client: Optional[AsyncMongoClient] = None
        self._reaper_task: Optional[asyncio.Task] = None

    def _create_collection(self, name: str) -> IMessageCollection:
        if self.config.in_memory:
            return InMemoryMessageCollection(self.config.database, name)
        if self._client is None:
            self._client = connect(self.config.mongo_url)
        return MongoMessageCollection.from_client(
            self._client, self.config.database, name
        )

    def get_queue(self, name: str) -> DocumentQueue:
        if name not in self._queues:
            self._queues[name] = DocumentQueue(
                self._create_collection(name),
                default_poll_ms=self.config.default_poll_ms,
                max_namespace_length=self.config.max_namespace_length,
            )
        return self._queues[name]

    def start_reaper(self, interval: Optional[float] = None):
        interval = self.config.reaper_interval if interval is None else interval
        if self._reaper_task is None and interval > 0:
            self._reaper_task = asyncio.create_task(self._reap_loop(interval))

    async def _reap_loop(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            for name, queue in list(self._queues.items()):
                try:
                    await queue.reset_stuck()
                except Exception:
                    # next round retries; get() sweeps on its own as well
                    logger.exception(f"Lease reaper failed for queue {name}")

    async def close(self):
        if self._reaper_task is not None:
            self._reaper_task.cancel()
            try:
                await self._reaper_task
            except asyncio.CancelledError:
                pass
            self._reaper_task = None
        if self._client is not None:
            await self._client.close()
            self._client = None
