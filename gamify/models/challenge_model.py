# gamify/models/challenge_model.py
from datetime import datetime
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, Field

from ..utils.datetime_utils import utcnow
from .reward_model import PyObjectId


class EligibilityCriteria(BaseModel):
    min_level: Optional[int] = None
    min_xp: Optional[int] = None
    subscription_tier: Optional[str] = None  # "free" | "premium" | "all"


class RewardsClaimed(BaseModel):
    xp: bool = False
    badge: bool = False
    achievement: bool = False


class ChallengeParticipantModel(BaseModel):
    id: Optional[PyObjectId] = Field(alias="_id", default=None)
    challenge_id: PyObjectId
    user_id: PyObjectId

    current_value: int = Field(default=0, ge=0)
    progress_percentage: int = Field(default=0, ge=0, le=100)
    rank: Optional[int] = None

    is_completed: bool = False
    completed_at: Optional[datetime] = None
    rewards_claimed: RewardsClaimed = Field(default_factory=RewardsClaimed)

    joined_at: datetime = Field(default_factory=utcnow)

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
    }
