# gamify/schemas/result_schema.py
from typing import Optional

from pydantic import BaseModel


class ActionResult(BaseModel):
    """Structured outcome for caller-facing actions. Rejections are results, not exceptions."""
    success: bool
    message: str
    reason: Optional[str] = None  # "not_found" | "rejected" on failure

    @classmethod
    def ok(cls, message: str) -> "ActionResult":
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, message: str) -> "ActionResult":
        return cls(success=False, message=message, reason="rejected")

    @classmethod
    def not_found(cls, message: str) -> "ActionResult":
        return cls(success=False, message=message, reason="not_found")
