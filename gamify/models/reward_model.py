# gamify/models/reward_model.py
import os
from typing import Any, Literal

from pydantic import BaseModel
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

# Mongo ObjectId -> str for serialization
PyObjectId = Annotated[str, BeforeValidator(lambda x: str(x))]

BADGE_XP_REWARD = int(os.getenv("BADGE_XP_REWARD", "150"))

AchievementTier = Literal["common", "uncommon", "rare", "epic", "legendary", "exotic", "mythic"]
AchievementCategory = Literal["course", "lesson", "quiz", "assignment", "social", "streak", "special", "project"]


class CriteriaDescriptor(BaseModel):
    """Stored shape of an unlock rule: {type, value, ...extra}. Meaning of value depends on type."""
    type: str
    value: Any = None

    model_config = {"extra": "allow"}
