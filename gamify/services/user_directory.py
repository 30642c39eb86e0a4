# gamify/services/user_directory.py
from typing import Any, Dict, Iterable, Optional

from ..schemas.leaderboard_schema import LeaderboardUser
from ..utils.level_utils import calculate_level

USER_CARD_PROJECTION = {"username": 1, "name": 1, "email": 1, "profile_photo": 1, "level": 1, "xp": 1}


def display_name(user_doc: Optional[dict]) -> str:
    if not user_doc:
        return "user"
    for key in ("username", "name"):
        if user_doc.get(key):
            return user_doc[key]
    email = user_doc.get("email")
    return email.split("@")[0] if isinstance(email, str) and "@" in email else "user"


def to_leaderboard_user(user_doc: dict) -> LeaderboardUser:
    xp = int(user_doc.get("xp") or 0)
    return LeaderboardUser(
        id=str(user_doc["_id"]),
        username=display_name(user_doc),
        profile_photo=user_doc.get("profile_photo"),
        level=int(user_doc.get("level") or calculate_level(xp)),
        xp=xp,
    )


async def load_user_cards(users_collection, ids: Iterable[Any]) -> Dict[Any, dict]:
    """_id -> projected user doc, for every id that still exists."""
    ids = list(ids)
    if not ids:
        return {}
    cursor = users_collection.find({"_id": {"$in": ids}}, USER_CARD_PROJECTION)
    return {u["_id"]: u for u in await cursor.to_list(length=None)}
