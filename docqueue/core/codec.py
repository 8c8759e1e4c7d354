from typing import Any, Dict, Mapping, Optional

from bson import ObjectId

from .errors import InvalidArgumentError

ID_FIELD = "id"
PAYLOAD_FIELD = "payload"


def payload_path(field: str) -> str:
    return f"{PAYLOAD_FIELD}.{field}"


def to_message(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Turns a stored document into the message handed to callers.

    Bookkeeping fields are dropped and the payload is merged next to ``id``.
    A payload key named ``id`` never overrides the document identity.
    """
    message: Dict[str, Any] = {ID_FIELD: document["_id"]}
    for key, value in document.get(PAYLOAD_FIELD, {}).items():
        if key != ID_FIELD:
            message[key] = value
    return message


def payload_of(message: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in message.items() if key != ID_FIELD}


def to_filter(
    query: Mapping[str, Any], running: Optional[bool] = None
) -> Dict[str, Any]:
    """Builds a store filter matching ``query`` against the payload."""
    store_filter: Dict[str, Any] = {}
    if running is not None:
        store_filter["running"] = running
    for field, condition in query.items():
        store_filter[payload_path(field)] = condition
    return store_filter


def id_to_wire(value: ObjectId) -> str:
    return str(value)


def id_from_wire(value: Any) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise InvalidArgumentError(f"Invalid message id: {value!r}")


def message_to_wire(message: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if message is None:
        return None
    wire = dict(message)
    wire[ID_FIELD] = id_to_wire(message[ID_FIELD])
    return wire


def message_from_wire(message: Mapping[str, Any]) -> Dict[str, Any]:
    if not isinstance(message, Mapping) or ID_FIELD not in message:
        raise InvalidArgumentError("Message must be a mapping with an id")
    local = dict(message)
    local[ID_FIELD] = id_from_wire(message[ID_FIELD])
    return local
