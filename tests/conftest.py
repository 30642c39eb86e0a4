"""
Shared fixtures: an in-memory Motor-compatible database with the production indexes,
an engine bound to it, and seed helpers for users, rewards and activity.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from gamify.db.mongo import (
    ACHIEVEMENTS,
    ASSIGNMENTS,
    BADGES,
    CHALLENGES,
    COMMENTS,
    COURSES,
    LEARNING_GOALS,
    POSTS,
    PROJECTS,
    SUBMISSIONS,
    USERS,
    init_db_indexes,
)
from gamify.services.engine import GamificationEngine
from gamify.utils.datetime_utils import utcnow


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client[f"gamify_test_{ObjectId()}"]
    await init_db_indexes(database)
    return database


@pytest.fixture
async def engine(db):
    eng = GamificationEngine(db)
    yield eng
    await eng.drain()


class Seeder:
    """Inserts documents in the shapes the engine reads."""

    def __init__(self, database):
        self.db = database

    async def user(self, xp: int = 0, level: int = 1, **extra) -> str:
        doc = {"username": extra.pop("username", f"user{ObjectId()}"), "xp": xp, "level": level}
        doc.update(extra)
        res = await self.db[USERS].insert_one(doc)
        return str(res.inserted_id)

    async def reward(
        self,
        kind: str,
        criteria: Dict[str, Any],
        xp_reward: Optional[int] = 0,
        **extra,
    ) -> str:
        doc = {
            "name": extra.pop("name", f"{kind} {criteria.get('type')}"),
            "description": "",
            "unlock_criteria": criteria,
            "is_active": extra.pop("is_active", True),
            "created_at": utcnow(),
        }
        if xp_reward is not None:
            doc["xp_reward"] = xp_reward
        doc.update(extra)
        collection = BADGES if kind == "badge" else ACHIEVEMENTS
        res = await self.db[collection].insert_one(doc)
        return str(res.inserted_id)

    async def achievement(self, criteria, xp_reward=0, **extra) -> str:
        return await self.reward("achievement", criteria, xp_reward, **extra)

    async def badge(self, criteria, xp_reward=None, **extra) -> str:
        return await self.reward("badge", criteria, xp_reward, **extra)

    async def course(self, course_type: str = "programming", status: str = "published") -> ObjectId:
        res = await self.db[COURSES].insert_one({"course_type": course_type, "status": status})
        return res.inserted_id

    async def assignments(self, course_id, count: int) -> None:
        for _ in range(count):
            await self.db[ASSIGNMENTS].insert_one({"course_id": course_id})

    async def submission(
        self,
        user_id,
        course_id=None,
        score: float = 80,
        max_score: float = 100,
        status: str = "graded",
        graded_at: Optional[datetime] = None,
    ) -> ObjectId:
        res = await self.db[SUBMISSIONS].insert_one({
            "user_id": ObjectId(user_id),
            "course_id": course_id or ObjectId(),
            "status": status,
            "score": score,
            "max_score": max_score,
            "graded_at": graded_at or utcnow(),
        })
        return res.inserted_id

    async def project(self, user_id, is_public=True, likes=0, created_at=None) -> None:
        await self.db[PROJECTS].insert_one({
            "user_id": ObjectId(user_id),
            "is_public": is_public,
            "likes_count": likes,
            "created_at": created_at or utcnow(),
        })

    async def post(self, user_id, likes=0, created_at=None) -> None:
        await self.db[POSTS].insert_one({
            "user_id": ObjectId(user_id),
            "likes_count": likes,
            "created_at": created_at or utcnow(),
        })

    async def comment(self, user_id, likes=0, created_at=None) -> None:
        await self.db[COMMENTS].insert_one({
            "user_id": ObjectId(user_id),
            "likes_count": likes,
            "created_at": created_at or utcnow(),
        })

    async def challenge(
        self,
        type: str = "share_projects",
        target_value: int = 5,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: str = "active",
        **extra,
    ) -> str:
        now = utcnow()
        doc = {
            "title": extra.pop("title", f"{type} challenge"),
            "description": "",
            "type": type,
            "target_value": target_value,
            "start_date": start or now - timedelta(days=1),
            "end_date": end or now + timedelta(days=7),
            "status": status,
            "participant_count": 0,
            "show_leaderboard": True,
            "leaderboard_type": "top",
            "is_public": True,
            "created_at": now,
        }
        doc.update(extra)
        res = await self.db[CHALLENGES].insert_one(doc)
        return str(res.inserted_id)

    async def goal(self, user_id, type: str = "complete_assignments", target_value: int = 10, **extra) -> str:
        now = utcnow()
        doc = {
            "user_id": ObjectId(user_id),
            "title": extra.pop("title", f"{type} goal"),
            "type": type,
            "target_value": target_value,
            "current_value": 0,
            "has_deadline": False,
            "status": "active",
            "progress_percentage": 0,
            "started_at": now,
            "created_at": now,
        }
        doc.update(extra)
        res = await self.db[LEARNING_GOALS].insert_one(doc)
        return str(res.inserted_id)


@pytest.fixture
def seed(db):
    return Seeder(db)
