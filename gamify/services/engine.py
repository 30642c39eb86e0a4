# gamify/services/engine.py
import logging
from typing import Any, Dict, Optional

from ..controllers.challenge_controller import ChallengeProgressEngine
from ..controllers.criteria_controller import CriteriaEvaluator
from ..controllers.goal_controller import GoalLifecycle
from ..controllers.leaderboard_controller import LeaderboardRanker
from ..controllers.trigger_controller import (
    CHALLENGE_TRIGGER_MAP,
    GOAL_TRIGGER_MAP,
    TriggerDispatcher,
)
from ..controllers.unlock_controller import (
    ACHIEVEMENT_KIND,
    BADGE_KIND,
    RewardCatalog,
    UnlockLedger,
)
from ..controllers.xp_controller import XPLedger
from ..db.mongo import get_database
from ..schemas.trigger_schema import TriggerResult
from .activity_store import ActivityStore
from .background import BackgroundTasks
from .notify import Notifier

logger = logging.getLogger(__name__)


class GamificationEngine:
    """
    Wires every component against one database handle.

    ``handle_trigger`` is the single inbound entry point for domain events. XP awards
    feed back into it (``xp_earned`` / ``level_up``) through the background supervisor.
    """

    def __init__(self, database, background: Optional[BackgroundTasks] = None):
        self.db = database
        self.background = background or BackgroundTasks()
        self.notifier = Notifier(database, self.background)
        self.activity = ActivityStore(database)
        self.evaluator = CriteriaEvaluator(self.activity)

        self.xp = XPLedger(database, self.notifier, self.background)
        self.xp.on_trigger = self.handle_trigger

        self.achievements = RewardCatalog(database, ACHIEVEMENT_KIND, self.evaluator)
        self.badges = RewardCatalog(database, BADGE_KIND, self.evaluator)
        self.achievement_ledger = UnlockLedger(database, self.achievements, self.evaluator, self.xp, self.notifier)
        self.badge_ledger = UnlockLedger(database, self.badges, self.evaluator, self.xp, self.notifier)
        self.achievement_dispatcher = TriggerDispatcher(self.achievements, self.achievement_ledger)
        self.badge_dispatcher = TriggerDispatcher(self.badges, self.badge_ledger)

        self.challenges = ChallengeProgressEngine(database, self.activity, self.xp, self.notifier)
        self.goals = GoalLifecycle(database, self.activity, self.xp, self.notifier)
        self.leaderboards = LeaderboardRanker(database, self.activity, self.challenges)

    def catalog(self, kind: str) -> RewardCatalog:
        return self.badges if kind == "badge" else self.achievements

    def ledger(self, kind: str) -> UnlockLedger:
        return self.badge_ledger if kind == "badge" else self.achievement_ledger

    async def handle_trigger(
        self,
        user_id: str,
        trigger_type: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> TriggerResult:
        payload = payload or {}
        achievements = await self.achievement_dispatcher.dispatch(user_id, trigger_type, payload)
        badges = await self.badge_dispatcher.dispatch(user_id, trigger_type, payload)

        goal_types = GOAL_TRIGGER_MAP.get(trigger_type, ())
        if goal_types:
            try:
                await self.goals.check_goals_for_trigger(user_id, goal_types)
            except Exception:
                logger.exception("Error checking goals for user %s on trigger %s", user_id, trigger_type)

        challenge_types = CHALLENGE_TRIGGER_MAP.get(trigger_type, ())
        if challenge_types:
            try:
                await self.challenges.check_challenges_for_trigger(user_id, challenge_types)
            except Exception:
                logger.exception("Error checking challenges for user %s on trigger %s", user_id, trigger_type)

        if achievements or badges:
            logger.info(
                "Trigger %s for user %s unlocked %s achievements, %s badges",
                trigger_type, user_id, len(achievements), len(badges),
            )
        return TriggerResult(achievements=achievements, badges=badges)

    async def drain(self) -> None:
        await self.background.drain()


_engine: Optional[GamificationEngine] = None


def get_engine() -> GamificationEngine:
    """FastAPI dependency; one engine per process, bound to the configured database."""
    global _engine
    if _engine is None:
        _engine = GamificationEngine(get_database())
    return _engine
