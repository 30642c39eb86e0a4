# gamify/utils/mongo_utils.py
from typing import Any, Union

from bson import ObjectId
from bson.errors import InvalidId


def as_oid(value: Union[str, ObjectId]) -> ObjectId:
    """Coerce a str/ObjectId into an ObjectId. Raises ValueError on garbage."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as exc:
        raise ValueError(f"Invalid ObjectId: {value!r}") from exc


def is_oid(value: Any) -> bool:
    return isinstance(value, ObjectId) or ObjectId.is_valid(str(value))


def percent(current: float, target: float) -> int:
    """0..100, rounded half-up. A non-positive target yields 0."""
    if not target or target <= 0:
        return 0
    pct = int(current * 100.0 / target + 0.5)
    return max(0, min(100, pct))
