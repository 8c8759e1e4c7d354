import pytest
from bson import ObjectId

from docqueue.core.codec import (
    id_from_wire,
    message_from_wire,
    message_to_wire,
    payload_of,
    to_filter,
    to_message,
)
from docqueue.core.errors import InvalidArgumentError


def test_to_message_merges_payload_after_id():
    document_id = ObjectId()
    document = {
        "_id": document_id,
        "payload": {"id": "spoofed", "key": "value"},
        "running": True,
        "priority": 0.0,
    }

    message = to_message(document)

    assert message == {"id": document_id, "key": "value"}
    assert list(message) == ["id", "key"]


def test_payload_of_drops_id():
    assert payload_of({"id": ObjectId(), "a": 1, "b": {"c": 2}}) == {
        "a": 1,
        "b": {"c": 2},
    }


def test_to_filter_prefixes_payload_fields():
    assert to_filter({"a.b": 1, "c": {"$gt": 2}}) == {
        "payload.a.b": 1,
        "payload.c": {"$gt": 2},
    }
    assert to_filter({}, running=False) == {"running": False}


def test_wire_ids():
    document_id = ObjectId()
    wire = message_to_wire({"id": document_id, "key": 1})

    assert wire == {"id": str(document_id), "key": 1}
    assert message_from_wire(wire) == {"id": document_id, "key": 1}
    assert message_to_wire(None) is None


@pytest.mark.parametrize("value", ["not-an-id", 42, None, "a" * 23])
def test_invalid_wire_ids(value):
    with pytest.raises(InvalidArgumentError):
        id_from_wire(value)


def test_message_from_wire_requires_id():
    with pytest.raises(InvalidArgumentError):
        message_from_wire({"key": 1})
