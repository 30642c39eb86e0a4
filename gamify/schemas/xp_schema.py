# gamify/schemas/xp_schema.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class XPAwardResult(BaseModel):
    leveled_up: bool = False
    new_level: Optional[int] = None


class LevelProgress(BaseModel):
    current_xp: int
    xp_needed: int
    progress_percentage: float
    xp_for_current_level: int
    xp_for_next_level: int


class XPTransactionOut(BaseModel):
    amount: int
    source: str
    source_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class XPSummary(BaseModel):
    user_id: str
    xp: int
    level: int
    level_progress: LevelProgress
    recent: List[XPTransactionOut] = []
