# gamify/schemas/challenge_schema.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ParticipantOut(BaseModel):
    challenge_id: str
    challenge_title: Optional[str] = None
    user_id: str
    current_value: int
    progress_percentage: int
    rank: Optional[int] = None
    is_completed: bool
    completed_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None


class StatusSweepResult(BaseModel):
    activated: int
    ended: int


class ParticipationsResponse(BaseModel):
    user_id: str
    count: int
    participations: List[ParticipantOut]
