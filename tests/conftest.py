import pytest

from docqueue.server.engine import DocumentQueue
from docqueue.server.storage.in_memory import InMemoryMessageCollection


@pytest.fixture
def collection():
    return InMemoryMessageCollection("testing", "messages")


@pytest.fixture
def queue(collection):
    return DocumentQueue(collection)
