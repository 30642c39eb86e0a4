# gamify/models/goal_model.py
from datetime import datetime
from typing import Any, Dict, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, Field

from ..utils.datetime_utils import utcnow
from .reward_model import PyObjectId

GoalType = Literal[
    "complete_courses",
    "earn_xp",
    "reach_level",
    "complete_assignments",
    "complete_lessons",
    "maintain_streak",
    "share_projects",
    "custom",
]
GoalStatus = Literal["active", "paused", "completed", "failed"]

TERMINAL_GOAL_STATUSES = ("completed", "failed")


class LearningGoalModel(BaseModel):
    id: Optional[PyObjectId] = Field(alias="_id", default=None)
    user_id: PyObjectId
    title: str
    description: Optional[str] = None
    type: GoalType

    target_value: int = Field(ge=1)
    current_value: int = Field(default=0, ge=0)
    custom_criteria: Optional[Dict[str, Any]] = None

    deadline: Optional[datetime] = None
    has_deadline: bool = False

    xp_reward: Optional[int] = Field(default=None, ge=0)
    badge_reward: Optional[PyObjectId] = None
    achievement_reward: Optional[PyObjectId] = None

    status: GoalStatus = "active"
    completed_at: Optional[datetime] = None
    started_at: datetime = Field(default_factory=utcnow)
    progress_percentage: int = Field(default=0, ge=0, le=100)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
    }
