# gamify/controllers/trigger_controller.py
import logging
from typing import Any, Dict, List, Optional, Tuple

from .unlock_controller import RewardCatalog, UnlockLedger

logger = logging.getLogger(__name__)

# trigger -> criteria types a reward definition may carry to be re-checked
REWARD_TRIGGER_MAP: Dict[str, Tuple[str, ...]] = {
    "lesson_completed": ("complete_lessons", "earn_xp", "reach_level"),
    "course_completed": ("complete_course", "complete_course_type", "first_completion"),
    "assignment_submitted": ("complete_assignments", "perfect_score"),
    "quiz_passed": ("pass_quizzes", "perfect_score"),
    "project_shared": ("share_projects", "project_likes"),
    "post_created": ("create_posts",),
    "like_received": ("receive_likes",),
    "daily_login": ("maintain_streak", "earn_xp"),
    "xp_earned": ("earn_xp", "reach_level"),
    "level_up": ("reach_level",),
}

# trigger -> goal types to refresh
GOAL_TRIGGER_MAP: Dict[str, Tuple[str, ...]] = {
    "course_completed": ("complete_courses",),
    "assignment_submitted": ("complete_assignments",),
    "quiz_passed": ("complete_assignments",),
    "xp_earned": ("earn_xp",),
    "level_up": ("reach_level",),
    "project_shared": ("share_projects",),
    "daily_login": ("maintain_streak",),
}

# trigger -> challenge types to refresh
CHALLENGE_TRIGGER_MAP: Dict[str, Tuple[str, ...]] = {
    "course_completed": ("complete_courses",),
    "assignment_submitted": ("complete_assignments",),
    "quiz_passed": ("complete_assignments",),
    "xp_earned": ("earn_xp",),
    "level_up": ("reach_level",),
    "project_shared": ("share_projects",),
    "post_created": ("social_engagement",),
    "like_received": ("social_engagement",),
}


def criteria_types_for(trigger_type: str) -> Tuple[str, ...]:
    return REWARD_TRIGGER_MAP.get(trigger_type, ())


class TriggerDispatcher:
    """Routes one trigger to every candidate reward of a single kind."""

    def __init__(self, catalog: RewardCatalog, ledger: UnlockLedger):
        self.catalog = catalog
        self.ledger = ledger

    async def dispatch(
        self,
        user_id: str,
        trigger_type: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        unlocked: List[str] = []
        candidate_types = criteria_types_for(trigger_type)
        if not candidate_types:
            return unlocked

        try:
            candidates = await self.catalog.find_active_by_criteria_types(candidate_types)
        except Exception:
            logger.exception(
                "Error loading %ss for user %s on trigger %s",
                self.catalog.kind.name, user_id, trigger_type,
            )
            return unlocked

        for definition in candidates:
            reward_id = str(definition["_id"])
            try:
                if await self.ledger.try_unlock(user_id, reward_id, payload, definition=definition):
                    unlocked.append(reward_id)
            except Exception:
                logger.exception(
                    "Error checking %s %s for user %s on trigger %s",
                    self.catalog.kind.name, reward_id, user_id, trigger_type,
                )
        return unlocked
