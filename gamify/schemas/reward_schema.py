# gamify/schemas/reward_schema.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class CriteriaProgress(BaseModel):
    current: int
    target: int
    percentage: int

    @property
    def satisfied(self) -> bool:
        return self.current >= self.target


class RewardOut(BaseModel):
    id: str
    name: str
    description: str = ""
    icon: Optional[str] = None
    xp_reward: int = 0
    tier: Optional[str] = None
    category: Optional[str] = None
    unlock_criteria: Dict[str, Any]


class UnlockedRewardEntry(BaseModel):
    reward: RewardOut
    unlocked_at: datetime


class GalleryItem(RewardOut):
    unlocked: bool = False
    progress: Optional[CriteriaProgress] = None  # only for locked items


class RewardStats(BaseModel):
    total: int
    unlocked: int
    progress: float
    by_tier: Dict[str, int] = {}
    by_category: Dict[str, int] = {}


class UnlockedListResponse(BaseModel):
    user_id: str
    count: int
    items: List[UnlockedRewardEntry]


class GalleryResponse(BaseModel):
    count: int
    gallery: List[GalleryItem]
