# gamify/schemas/goal_schema.py
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.goal_model import GoalType


class GoalCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: GoalType
    target_value: int = Field(..., ge=1)
    custom_criteria: Optional[Dict[str, Any]] = None
    has_deadline: bool = False
    deadline: Optional[datetime] = None
    xp_reward: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _deadline_required(self):
        if self.has_deadline and self.deadline is None:
            raise ValueError("deadline is required when has_deadline is true")
        return self


class GoalUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    target_value: Optional[int] = Field(default=None, ge=1)
    custom_criteria: Optional[Dict[str, Any]] = None
    has_deadline: Optional[bool] = None
    deadline: Optional[datetime] = None
    xp_reward: Optional[int] = Field(default=None, ge=0)


class GoalStats(BaseModel):
    total: int
    active: int
    completed: int
    failed: int
    paused: int
    by_type: Dict[str, int] = {}
