from datetime import datetime
from numbers import Number
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from bson import ObjectId

_COMPARISONS: Dict[str, Callable[[Any, Any], bool]] = {
    "$gt": lambda a, b: a > b,
    "$gte": lambda a, b: a >= b,
    "$lt": lambda a, b: a < b,
    "$lte": lambda a, b: a <= b,
}


def _resolve(value: Any, parts: Sequence[str]) -> List[Any]:
    if not parts:
        return [value]
    head, rest = parts[0], parts[1:]
    if isinstance(value, Mapping):
        if head in value:
            return _resolve(value[head], rest)
        return []
    if isinstance(value, list):
        if head.isdigit():
            index = int(head)
            return _resolve(value[index], rest) if index < len(value) else []
        found: List[Any] = []
        for item in value:
            if isinstance(item, Mapping):
                found.extend(_resolve(item, parts))
        return found
    return []


def field_values(document: Mapping[str, Any], path: str) -> List[Any]:
    """Values at a dotted path, with arrays also contributing their elements."""
    values: List[Any] = []
    for value in _resolve(document, path.split(".")):
        values.append(value)
        if isinstance(value, list):
            values.extend(value)
    return values


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def _same_kind(a: Any, b: Any) -> bool:
    if _is_number(a) and _is_number(b):
        return True
    for kind in (bool, str, datetime, ObjectId):
        if isinstance(a, kind) and isinstance(b, kind):
            return True
    return False


def values_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return list(a.keys()) == list(b.keys()) and all(
            values_equal(a[key], b[key]) for key in a
        )
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    return a == b


def _equals_any(values: List[Any], expected: Any) -> bool:
    if expected is None and not values:
        return True
    return any(values_equal(value, expected) for value in values)


def _is_operator_document(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and len(condition) > 0
        and all(isinstance(key, str) and key.startswith("$") for key in condition)
    )


def _match_operator(values: List[Any], operator: str, operand: Any) -> bool:
    if operator == "$eq":
        return _equals_any(values, operand)
    if operator == "$ne":
        return not _equals_any(values, operand)
    if operator in _COMPARISONS:
        compare = _COMPARISONS[operator]
        return any(
            _same_kind(value, operand) and compare(value, operand) for value in values
        )
    if operator == "$in":
        return any(_equals_any(values, candidate) for candidate in operand)
    if operator == "$nin":
        return not any(_equals_any(values, candidate) for candidate in operand)
    if operator == "$exists":
        return bool(values) == bool(operand)
    raise ValueError(f"Unsupported query operator: {operator}")


def _match_field(values: List[Any], condition: Any) -> bool:
    if _is_operator_document(condition):
        return all(
            _match_operator(values, operator, operand)
            for operator, operand in condition.items()
        )
    return _equals_any(values, condition)


def matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(document, part) for part in condition):
                return False
        elif key == "$or":
            if not any(matches(document, part) for part in condition):
                return False
        elif key == "$nor":
            if any(matches(document, part) for part in condition):
                return False
        elif key.startswith("$"):
            raise ValueError(f"Unsupported top-level operator: {key}")
        elif not _match_field(field_values(document, key), condition):
            return False
    return True


# BSON comparison order across types, enough for the fields the queue sorts on
def _sort_value(value: Any) -> Tuple[int, Any]:
    if value is None:
        return (0, 0)
    if _is_number(value):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, (Mapping, list)):
        return (3, repr(value))
    if isinstance(value, ObjectId):
        return (4, value.binary)
    if isinstance(value, bool):
        return (5, value)
    if isinstance(value, datetime):
        return (6, value.timestamp())
    return (7, repr(value))


def sort_documents(
    documents: List[Dict[str, Any]], sort: Optional[Sequence[Tuple[str, int]]]
) -> List[Dict[str, Any]]:
    ordered = list(documents)
    for field, direction in reversed(list(sort or [])):
        ordered.sort(
            key=lambda document: _sort_value(
                next(iter(_resolve(document, field.split("."))), None)
            ),
            reverse=direction < 0,
        )
    return ordered


def apply_update(document: Dict[str, Any], update: Mapping[str, Any]):
    for operator, fields in update.items():
        if operator == "$set":
            for path, value in fields.items():
                target = document
                parts = path.split(".")
                for part in parts[:-1]:
                    target = target.setdefault(part, {})
                target[parts[-1]] = value
        elif operator == "$unset":
            for path in fields:
                target = document
                parts = path.split(".")
                for part in parts[:-1]:
                    target = target.get(part, {})
                if isinstance(target, dict):
                    target.pop(parts[-1], None)
        else:
            raise ValueError(f"Unsupported update operator: {operator}")


def project(
    document: Dict[str, Any], projection: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    if not projection:
        return document
    projected = {}
    if projection.get("_id", 1) and "_id" in document:
        projected["_id"] = document["_id"]
    for field, include in projection.items():
        if field != "_id" and include and field in document:
            projected[field] = document[field]
    return projected
