# gamify/schemas/leaderboard_schema.py
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class LeaderboardUser(BaseModel):
    id: str
    username: str
    profile_photo: Optional[str] = None
    level: int = 1
    xp: int = 0


class LeaderboardEntry(BaseModel):
    rank: int
    user: LeaderboardUser
    value: int
    metadata: Optional[Dict[str, Any]] = None


class LeaderboardResponse(BaseModel):
    metric: str
    count: int
    leaderboard: List[LeaderboardEntry]
    user_rank: Optional[int] = None


class RankResponse(BaseModel):
    metric: str
    user_id: str
    rank: Optional[int] = None
