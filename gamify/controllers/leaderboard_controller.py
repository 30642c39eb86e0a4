# gamify/controllers/leaderboard_controller.py
"""
Ranked views over users.

Ordering per metric (rank = offset + index + 1 within one read):
  global_xp / course_xp      xp desc, _id asc
  global_level               level desc, xp desc, _id asc
  *_achievements / *_badges  count desc, time the count was reached asc, _id asc
  course_completion          graded submissions desc, _id asc
  challenge                  stored participant order
"""
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from ..db.mongo import ACHIEVEMENTS, USER_ACHIEVEMENTS, USER_BADGES, USERS
from ..schemas.leaderboard_schema import LeaderboardEntry
from ..services.activity_store import ActivityStore
from ..services.user_directory import USER_CARD_PROJECTION, load_user_cards, to_leaderboard_user
from ..utils.mongo_utils import as_oid, is_oid, percent
from .challenge_controller import ChallengeProgressEngine

logger = logging.getLogger(__name__)

LEADERBOARD_DEFAULT_LIMIT = int(os.getenv("LEADERBOARD_DEFAULT_LIMIT", "100"))
LEADERBOARD_MAX_LIMIT = int(os.getenv("LEADERBOARD_MAX_LIMIT", "100"))

METRICS = (
    "global_xp",
    "global_level",
    "global_achievements",
    "global_badges",
    "course_xp",
    "course_completion",
    "category_achievements",
    "challenge",
)


class UnknownMetricError(ValueError):
    pass


def sanitize_page(limit: Optional[int], offset: Optional[int]) -> Tuple[int, int]:
    limit = LEADERBOARD_DEFAULT_LIMIT if limit is None else limit
    return max(1, min(int(limit), LEADERBOARD_MAX_LIMIT)), max(0, int(offset or 0))


class LeaderboardRanker:
    def __init__(self, database, activity: ActivityStore, challenges: ChallengeProgressEngine):
        self.db = database
        self.users = database[USERS]
        self.activity = activity
        self.challenges = challenges

    async def get_top_n(
        self,
        metric: str,
        limit: Optional[int] = None,
        offset: Optional[int] = 0,
        course_id: Optional[str] = None,
        challenge_id: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[LeaderboardEntry]:
        limit, offset = sanitize_page(limit, offset)

        if metric == "global_xp":
            return await self._users_page({}, [("xp", -1), ("_id", 1)], "xp", limit, offset)
        if metric == "global_level":
            return await self._users_page({}, [("level", -1), ("xp", -1), ("_id", 1)], "level", limit, offset)
        if metric == "global_achievements":
            return await self._count_page(USER_ACHIEVEMENTS, {}, limit, offset)
        if metric == "global_badges":
            return await self._count_page(USER_BADGES, {}, limit, offset)
        if metric == "category_achievements":
            if not category:
                return []
            ids = await self.db[ACHIEVEMENTS].distinct("_id", {"category": category})
            if not ids:
                return []
            return await self._count_page(
                USER_ACHIEVEMENTS, {"achievement_id": {"$in": ids}}, limit, offset, {"category": category}
            )
        if metric == "course_xp":
            if not course_id or not is_oid(course_id):
                return []
            user_ids = await self.activity.graded_users_for_course(course_id)
            if not user_ids:
                return []
            return await self._users_page(
                {"_id": {"$in": user_ids}}, [("xp", -1), ("_id", 1)], "xp", limit, offset,
                {"course_id": str(course_id)},
            )
        if metric == "course_completion":
            if not course_id or not is_oid(course_id):
                return []
            return await self._course_completion_page(course_id, limit, offset)
        if metric == "challenge":
            if not challenge_id:
                return []
            return await self.challenges.get_challenge_leaderboard(challenge_id, limit=limit, offset=offset)
        raise UnknownMetricError(f"Unknown leaderboard metric: {metric}")

    async def _users_page(
        self,
        query: Dict[str, Any],
        sort: List[Tuple[str, int]],
        value_field: str,
        limit: int,
        offset: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[LeaderboardEntry]:
        cursor = self.users.find(query, USER_CARD_PROJECTION, sort=sort, skip=offset, limit=limit)
        users = await cursor.to_list(length=None)
        entries = []
        for index, user in enumerate(users):
            card = to_leaderboard_user(user)
            entries.append(LeaderboardEntry(
                rank=offset + index + 1,
                user=card,
                value=getattr(card, value_field),
                metadata=metadata,
            ))
        return entries

    async def _unlock_counts(self, collection: str, match: Dict[str, Any]) -> List[dict]:
        """[{_id: user_id, count, reached_at}] ordered for ranking."""
        cursor = self.db[collection].aggregate([
            {"$match": match},
            {"$group": {"_id": "$user_id", "count": {"$sum": 1}, "reached_at": {"$max": "$unlocked_at"}}},
        ])
        rows = await cursor.to_list(length=None)
        rows.sort(key=lambda r: (-r["count"], r["reached_at"], r["_id"]))
        return rows

    async def _count_page(
        self,
        collection: str,
        match: Dict[str, Any],
        limit: int,
        offset: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[LeaderboardEntry]:
        rows = (await self._unlock_counts(collection, match))[offset:offset + limit]
        cards = await load_user_cards(self.users, [r["_id"] for r in rows])

        entries = []
        for index, r in enumerate(rows):
            user = cards.get(r["_id"])
            if user is None:
                continue
            entries.append(LeaderboardEntry(
                rank=offset + index + 1,
                user=to_leaderboard_user(user),
                value=int(r["count"]),
                metadata=metadata,
            ))
        return entries

    async def _course_completion_page(self, course_id, limit: int, offset: int) -> List[LeaderboardEntry]:
        total = await self.activity.count_course_assignments(course_id)
        if total == 0:
            return []

        rows = await self.activity.graded_counts_for_course(course_id)
        rows.sort(key=lambda r: (-r["completed"], r["_id"]))
        rows = rows[offset:offset + limit]
        cards = await load_user_cards(self.users, [r["_id"] for r in rows])

        entries = []
        for index, r in enumerate(rows):
            user = cards.get(r["_id"])
            if user is None:
                continue
            entries.append(LeaderboardEntry(
                rank=offset + index + 1,
                user=to_leaderboard_user(user),
                value=int(r["completed"]),
                metadata={
                    "course_id": str(course_id),
                    "total_assignments": total,
                    "completion_percentage": percent(r["completed"], total),
                },
            ))
        return entries

    async def get_user_rank(
        self,
        user_id: str,
        metric: str,
        course_id: Optional[str] = None,
        challenge_id: Optional[str] = None,
    ) -> Optional[int]:
        """1 + number of users strictly ahead on the metric; None when the user isn't ranked."""
        if not is_oid(user_id):
            return None
        uid = as_oid(user_id)

        if metric in ("global_xp", "global_level", "course_xp"):
            user = await self.users.find_one({"_id": uid}, {"xp": 1, "level": 1})
            if not user:
                return None
            xp = int(user.get("xp") or 0)

            if metric == "global_xp":
                return await self.users.count_documents({"xp": {"$gt": xp}}) + 1

            if metric == "global_level":
                level = int(user.get("level") or 1)
                ahead = await self.users.count_documents({"$or": [
                    {"level": {"$gt": level}},
                    {"level": level, "xp": {"$gt": xp}},
                ]})
                return ahead + 1

            if not course_id or not is_oid(course_id):
                return None
            course_users = await self.activity.graded_users_for_course(course_id)
            if uid not in course_users:
                return None
            ahead = await self.users.count_documents({"_id": {"$in": course_users}, "xp": {"$gt": xp}})
            return ahead + 1

        if metric in ("global_achievements", "global_badges"):
            collection = USER_ACHIEVEMENTS if metric == "global_achievements" else USER_BADGES
            mine = await self.db[collection].count_documents({"user_id": uid})
            counts = await self._unlock_counts(collection, {})
            return sum(1 for r in counts if r["count"] > mine) + 1

        if metric == "challenge":
            if not challenge_id:
                return None
            participant = await self.challenges.get_participant(challenge_id, uid)
            return participant.get("rank") if participant else None

        if metric in METRICS:
            return None
        raise UnknownMetricError(f"Unknown leaderboard metric: {metric}")
