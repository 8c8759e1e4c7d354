import math
from typing import Any, Mapping

from bson import ObjectId

from .errors import InvalidArgumentError


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def require_integer(name: str, value: Any) -> int:
    if not is_integer(value):
        raise InvalidArgumentError(f"{name} must be an int, got {value!r}")
    return value


def require_non_negative_integer(name: str, value: Any) -> int:
    require_integer(name, value)
    if value < 0:
        raise InvalidArgumentError(f"{name} must not be negative, got {value}")
    return value


def require_priority(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgumentError(f"priority must be a number, got {value!r}")
    try:
        priority = float(value)
    except OverflowError:
        raise InvalidArgumentError(f"priority is out of range, got {value!r}") from None
    if not math.isfinite(priority):
        raise InvalidArgumentError(f"priority must be finite, got {value!r}")
    return priority


def require_bool(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be a bool, got {value!r}")
    return value


def require_optional_bool(name: str, value: Any) -> Any:
    if value is not None:
        require_bool(name, value)
    return value


def require_string_keys(name: str, value: Any) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise InvalidArgumentError(f"{name} must be a mapping, got {type(value).__name__}")
    for key in value:
        if not isinstance(key, str):
            raise InvalidArgumentError(f"{name} keys must be strings, got {key!r}")
    return value


def require_index_keys(name: str, value: Any) -> Mapping[str, int]:
    require_string_keys(name, value)
    for key, direction in value.items():
        if not is_integer(direction) or direction not in (1, -1):
            raise InvalidArgumentError(
                f"{name}[{key!r}] must be 1 or -1, got {direction!r}"
            )
    return value


def require_message_id(message: Any) -> ObjectId:
    if not isinstance(message, Mapping):
        raise InvalidArgumentError("message must be a mapping")
    message_id = message.get("id")
    if not isinstance(message_id, ObjectId):
        raise InvalidArgumentError(f"message id must be an ObjectId, got {message_id!r}")
    return message_id
