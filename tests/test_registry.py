import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from docqueue.core.config import QueueConfig
from docqueue.server.registry import QueueRegistry
from docqueue.server.storage.in_memory import InMemoryMessageCollection


@pytest.fixture
def registry():
    return QueueRegistry(QueueConfig(mongo_url="memory://"))


def test_config_defaults():
    config = QueueConfig()

    assert config.mongo_url == "mongodb://localhost:27017"
    assert config.database == "docqueue"
    assert config.default_poll_ms == 50
    assert not config.in_memory


def test_config_from_env():
    config = QueueConfig.from_env(
        {
            "DOCQUEUE_MONGO_URL": "memory://",
            "DOCQUEUE_DEFAULT_POLL_MS": "10",
            "DOCQUEUE_REAPER_INTERVAL": "0",
            "UNRELATED": "x",
        }
    )

    assert config.in_memory
    assert config.default_poll_ms == 10
    assert config.reaper_interval == 0
    assert config.database == "docqueue"


def test_get_queue_is_cached_per_name(registry):
    jobs = registry.get_queue("jobs")

    assert registry.get_queue("jobs") is jobs
    assert registry.get_queue("other") is not jobs
    assert isinstance(jobs.collection, InMemoryMessageCollection)
    assert jobs.collection.full_name == "docqueue.jobs"
    assert jobs.default_poll_ms == 50


@pytest.mark.asyncio
async def test_reaper_releases_expired_leases(registry):
    queue = registry.get_queue("jobs")
    await queue.send({"key": 1})
    await queue.collection.update_many(
        {},
        {
            "$set": {
                "running": True,
                "resetTimestamp": datetime.now(timezone.utc) - timedelta(seconds=1),
            }
        },
    )

    registry.start_reaper(interval=0.01)
    try:
        for _ in range(100):
            if await queue.count({}, running=False) == 1:
                break
            await asyncio.sleep(0.01)
        assert await queue.count({}, running=False) == 1
    finally:
        await registry.close()


@pytest.mark.asyncio
async def test_reaper_disabled_with_zero_interval(registry):
    registry.start_reaper(interval=0)

    assert registry._reaper_task is None
    await registry.close()


@pytest.mark.asyncio
async def test_close_stops_reaper(registry):
    registry.start_reaper(interval=10)
    task = registry._reaper_task

    await registry.close()

    assert task.cancelled()
    assert registry._reaper_task is None
