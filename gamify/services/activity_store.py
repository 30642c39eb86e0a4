# gamify/services/activity_store.py
"""
Read-only queries over activity the course and social services record.

The engine does not own these collections; it only depends on the query shapes below.
Every count accepts an optional ``since`` so challenges can measure inside their window
while achievements and goals use lifetime totals.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId

from ..db.mongo import (
    ASSIGNMENTS,
    COMMENTS,
    COURSES,
    POSTS,
    PROJECTS,
    SUBMISSIONS,
    USERS,
    XP_TRANSACTIONS,
)
from ..utils.mongo_utils import as_oid

GRADED = "graded"
PUBLISHED = "published"


def _since(query: Dict[str, Any], field: str, since: Optional[datetime]) -> Dict[str, Any]:
    if since is not None:
        query[field] = {"$gte": since}
    return query


class ActivityStore:
    def __init__(self, database):
        self.db = database

    # ── users ──────────────────────────────────────────────────────────────
    async def get_user(self, user_id, projection: Optional[Dict[str, int]] = None) -> Optional[dict]:
        return await self.db[USERS].find_one({"_id": as_oid(user_id)}, projection)

    # ── submissions ────────────────────────────────────────────────────────
    async def count_graded_submissions(
        self,
        user_id,
        since: Optional[datetime] = None,
        min_score: Optional[float] = None,
    ) -> int:
        query = {"user_id": as_oid(user_id), "status": GRADED}
        if min_score is not None:
            query["score"] = {"$gte": min_score}
        return await self.db[SUBMISSIONS].count_documents(_since(query, "graded_at", since))

    async def count_perfect_scores(self, user_id, since: Optional[datetime] = None) -> int:
        # score == max_score compares two fields of the same doc; stream instead of $expr.
        query = _since({"user_id": as_oid(user_id), "status": GRADED}, "graded_at", since)
        count = 0
        async for sub in self.db[SUBMISSIONS].find(query, {"score": 1, "max_score": 1}):
            score, max_score = sub.get("score"), sub.get("max_score")
            if score is not None and max_score is not None and score == max_score:
                count += 1
        return count

    async def distinct_completed_courses(
        self,
        user_id,
        since: Optional[datetime] = None,
        course_ids: Optional[List[ObjectId]] = None,
    ) -> List[Any]:
        query = {"user_id": as_oid(user_id), "status": GRADED}
        if course_ids is not None:
            query["course_id"] = {"$in": course_ids}
        return await self.db[SUBMISSIONS].distinct("course_id", _since(query, "graded_at", since))

    async def has_completed_course(self, user_id, course_id) -> bool:
        found = await self.db[SUBMISSIONS].find_one(
            {"user_id": as_oid(user_id), "course_id": as_oid(course_id), "status": GRADED},
            {"_id": 1},
        )
        return found is not None

    async def first_completer_of_course(self, course_id) -> Optional[ObjectId]:
        cursor = self.db[SUBMISSIONS].find(
            {"course_id": as_oid(course_id), "status": GRADED},
            {"user_id": 1},
            sort=[("graded_at", 1), ("_id", 1)],
            limit=1,
        )
        rows = await cursor.to_list(length=1)
        return rows[0]["user_id"] if rows else None

    async def graded_users_for_course(self, course_id) -> List[Any]:
        return await self.db[SUBMISSIONS].distinct(
            "user_id", {"course_id": as_oid(course_id), "status": GRADED}
        )

    async def graded_counts_for_course(self, course_id) -> List[dict]:
        """[{_id: user_id, completed: n}] graded submissions per user in one course."""
        cursor = self.db[SUBMISSIONS].aggregate([
            {"$match": {"course_id": as_oid(course_id), "status": GRADED}},
            {"$group": {"_id": "$user_id", "completed": {"$sum": 1}}},
        ])
        return await cursor.to_list(length=None)

    async def count_course_assignments(self, course_id) -> int:
        return await self.db[ASSIGNMENTS].count_documents({"course_id": as_oid(course_id)})

    # ── courses ────────────────────────────────────────────────────────────
    async def course_ids_of_type(self, course_type: str) -> List[ObjectId]:
        return await self.db[COURSES].distinct(
            "_id", {"course_type": course_type, "status": PUBLISHED}
        )

    # ── projects / social ──────────────────────────────────────────────────
    async def count_public_projects(
        self,
        user_id,
        since: Optional[datetime] = None,
        min_likes: Optional[int] = None,
    ) -> int:
        query = {"user_id": as_oid(user_id), "is_public": True}
        if min_likes is not None:
            query["likes_count"] = {"$gte": min_likes}
        return await self.db[PROJECTS].count_documents(_since(query, "created_at", since))

    async def count_posts(self, user_id, since: Optional[datetime] = None) -> int:
        query = _since({"user_id": as_oid(user_id)}, "created_at", since)
        return await self.db[POSTS].count_documents(query)

    async def count_comments(self, user_id, since: Optional[datetime] = None) -> int:
        query = _since({"user_id": as_oid(user_id)}, "created_at", since)
        return await self.db[COMMENTS].count_documents(query)

    async def sum_likes_received(
        self,
        user_id,
        since: Optional[datetime] = None,
        include_comments: bool = True,
    ) -> int:
        collections = [POSTS, COMMENTS] if include_comments else [POSTS]
        total = 0
        for name in collections:
            query = _since({"user_id": as_oid(user_id)}, "created_at", since)
            async for doc in self.db[name].find(query, {"likes_count": 1}):
                total += int(doc.get("likes_count") or 0)
        return total

    # ── xp ledger ──────────────────────────────────────────────────────────
    async def sum_xp(self, user_id, since: Optional[datetime] = None) -> int:
        match = _since({"user_id": as_oid(user_id)}, "created_at", since)
        cursor = self.db[XP_TRANSACTIONS].aggregate([
            {"$match": match},
            {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
        ])
        rows = await cursor.to_list(length=None)
        return int(rows[0]["total"]) if rows else 0
