from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TriggerRequest(BaseModel):
    trigger_type: str = Field(..., min_length=1, examples=["course_completed"])
    payload: Optional[Dict[str, Any]] = None


class TriggerResult(BaseModel):
    achievements: List[str] = []
    badges: List[str] = []
