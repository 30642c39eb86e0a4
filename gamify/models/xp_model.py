# gamify/models/xp_model.py
from datetime import datetime
from typing import Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, Field

from ..utils.datetime_utils import utcnow
from .reward_model import PyObjectId

XPSource = Literal[
    "lesson_completed",
    "quiz_passed",
    "assignment_submitted",
    "post_created",
    "comment_created",
    "like_received",
    "daily_login",
    "streak_milestone",
    "project_shared",
    "achievement_unlocked",
    "badge_earned",
    "referral",
    "goal_completed",
    "challenge_completed",
    "course_completed",
    "video_watched",
    "learning_path_milestone",
    "learning_path_completed",
    "flashcard_created",
    "flashcard_reviewed",
    "pomodoro_completed",
    "live_session_attended",
]


class XPTransactionModel(BaseModel):
    """One append-only ledger row. sum(amount) per user == users.xp."""
    id: Optional[PyObjectId] = Field(alias="_id", default=None)
    user_id: PyObjectId
    amount: int = Field(ge=0)
    source: str
    source_id: Optional[PyObjectId] = None
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
    }
