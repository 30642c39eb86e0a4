# gamify/controllers/goal_controller.py
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..db.mongo import LEARNING_GOALS
from ..models.goal_model import TERMINAL_GOAL_STATUSES, LearningGoalModel
from ..schemas.goal_schema import GoalCreateRequest, GoalStats, GoalUpdateRequest
from ..schemas.result_schema import ActionResult
from ..services.activity_store import ActivityStore
from ..services.notify import Notifier
from ..utils.datetime_utils import to_naive_utc, utcnow
from ..utils.mongo_utils import as_oid, is_oid, percent
from .xp_controller import XPLedger

logger = logging.getLogger(__name__)

# Stored goal fields that an explicit null in an edit must not clear.
NON_NULLABLE_EDIT_FIELDS = ("title", "target_value", "has_deadline")


class GoalLifecycle:
    """
    Per-user learning goals: active <-> paused, then completed or failed for good.
    Progress is measured against lifetime totals.
    """

    def __init__(
        self,
        database,
        activity: ActivityStore,
        xp_ledger: XPLedger,
        notifier: Optional[Notifier] = None,
    ):
        self.goals = database[LEARNING_GOALS]
        self.activity = activity
        self.xp_ledger = xp_ledger
        self.notifier = notifier

    async def _find(self, goal_id, user_id) -> Optional[dict]:
        if not (is_oid(goal_id) and is_oid(user_id)):
            return None
        return await self.goals.find_one({"_id": as_oid(goal_id), "user_id": as_oid(user_id)})

    async def get_goal(self, goal_id, user_id) -> Optional[LearningGoalModel]:
        doc = await self._find(goal_id, user_id)
        return LearningGoalModel(**doc) if doc else None

    async def list_goals(self, user_id, status: Optional[str] = None) -> List[LearningGoalModel]:
        query: Dict[str, Any] = {"user_id": as_oid(user_id)}
        if status:
            query["status"] = status
        cursor = self.goals.find(query, sort=[("created_at", -1), ("_id", -1)])
        return [LearningGoalModel(**d) for d in await cursor.to_list(length=None)]

    # ── caller-facing edits ────────────────────────────────────────────────
    async def create_goal(self, user_id, data: GoalCreateRequest) -> LearningGoalModel:
        now = utcnow()
        goal = LearningGoalModel(
            user_id=str(as_oid(user_id)),
            title=data.title,
            description=data.description,
            type=data.type,
            target_value=data.target_value,
            custom_criteria=data.custom_criteria,
            has_deadline=data.has_deadline,
            deadline=to_naive_utc(data.deadline) if data.has_deadline else None,
            xp_reward=data.xp_reward,
            started_at=now,
            created_at=now,
        )
        doc = goal.model_dump(by_alias=True, exclude_none=True)
        doc.pop("_id", None)
        doc["user_id"] = as_oid(user_id)
        res = await self.goals.insert_one(doc)
        logger.info("User %s created goal %s (%s)", user_id, res.inserted_id, data.type)

        await self.update_progress(res.inserted_id, user_id)
        return await self.get_goal(res.inserted_id, user_id)

    async def update_goal(self, goal_id, user_id, data: GoalUpdateRequest) -> ActionResult:
        goal = await self._find(goal_id, user_id)
        if not goal:
            return ActionResult.not_found("Goal not found")
        if goal.get("status") in TERMINAL_GOAL_STATUSES:
            return ActionResult.fail("Cannot update completed or failed goals")

        changes = data.model_dump(exclude_unset=True)
        for field in NON_NULLABLE_EDIT_FIELDS:
            if changes.get(field, False) is None:
                changes.pop(field)
        has_deadline = changes.get("has_deadline", goal.get("has_deadline", False))
        if "deadline" in changes:
            changes["deadline"] = to_naive_utc(changes["deadline"])
        if not has_deadline:
            changes["deadline"] = None
        elif changes.get("deadline", goal.get("deadline")) is None:
            return ActionResult.fail("deadline is required when has_deadline is true")
        changes["updated_at"] = utcnow()

        # Status guard: a concurrent completion wins over the edit.
        res = await self.goals.update_one(
            {"_id": goal["_id"], "status": {"$nin": list(TERMINAL_GOAL_STATUSES)}},
            {"$set": changes},
        )
        if res.matched_count == 0:
            return ActionResult.fail("Cannot update completed or failed goals")

        await self.update_progress(goal["_id"], user_id)
        return ActionResult.ok("Goal updated successfully")

    async def toggle_pause(self, goal_id, user_id) -> ActionResult:
        goal = await self._find(goal_id, user_id)
        if not goal:
            return ActionResult.not_found("Goal not found")

        current = goal.get("status")
        if current in TERMINAL_GOAL_STATUSES:
            return ActionResult.fail("Cannot pause/resume completed or failed goals")

        new_status = "active" if current == "paused" else "paused"
        res = await self.goals.update_one(
            {"_id": goal["_id"], "status": current},
            {"$set": {"status": new_status, "updated_at": utcnow()}},
        )
        if res.matched_count == 0:
            return ActionResult.fail("Goal changed while updating; try again")
        return ActionResult.ok(f"Goal {'paused' if new_status == 'paused' else 'resumed'} successfully")

    async def set_paused(self, goal_id, user_id, paused: bool) -> ActionResult:
        goal = await self._find(goal_id, user_id)
        if not goal:
            return ActionResult.not_found("Goal not found")
        if (goal.get("status") == "paused") == paused:
            return ActionResult.fail(f"Goal is already {'paused' if paused else 'active'}")
        return await self.toggle_pause(goal_id, user_id)

    async def delete_goal(self, goal_id, user_id) -> ActionResult:
        if not (is_oid(goal_id) and is_oid(user_id)):
            return ActionResult.not_found("Goal not found")
        res = await self.goals.delete_one({"_id": as_oid(goal_id), "user_id": as_oid(user_id)})
        if res.deleted_count == 0:
            return ActionResult.not_found("Goal not found")
        return ActionResult.ok("Goal deleted successfully")

    # ── progress ───────────────────────────────────────────────────────────
    async def measure(self, goal: dict, user_id) -> int:
        kind = goal.get("type")
        if kind == "complete_courses":
            return len(await self.activity.distinct_completed_courses(user_id))
        if kind == "earn_xp":
            user = await self.activity.get_user(user_id, {"xp": 1})
            return int(user.get("xp") or 0) if user else 0
        if kind == "reach_level":
            user = await self.activity.get_user(user_id, {"level": 1})
            return int(user.get("level") or 1) if user else 0
        if kind == "complete_assignments":
            return await self.activity.count_graded_submissions(user_id)
        if kind == "share_projects":
            return await self.activity.count_public_projects(user_id)
        if kind in ("complete_lessons", "maintain_streak"):
            # No lesson or streak records to count yet.
            return 0
        # custom: keeps whatever was recorded
        return int(goal.get("current_value") or 0)

    async def update_progress(self, goal_id, user_id, now: Optional[datetime] = None) -> bool:
        """Recompute one active goal. Non-active goals are left untouched."""
        if not (is_oid(goal_id) and is_oid(user_id)):
            return False
        goal = await self.goals.find_one(
            {"_id": as_oid(goal_id), "user_id": as_oid(user_id), "status": "active"}
        )
        if not goal:
            return False

        try:
            current = await self.measure(goal, user_id)
        except Exception:
            logger.exception("Error measuring goal %s for user %s", goal_id, user_id)
            return False

        now = now or utcnow()
        target = int(goal.get("target_value") or 1)
        active = {"_id": goal["_id"], "status": "active"}

        if current >= target:
            res = await self.goals.update_one(active, {"$set": {
                "status": "completed",
                "completed_at": now,
                "current_value": current,
                "progress_percentage": 100,
                "updated_at": now,
            }})
            if res.modified_count == 1:
                await self._grant_completion(goal, str(user_id))
            return True

        changes: Dict[str, Any] = {
            "current_value": current,
            "progress_percentage": percent(current, target),
            "updated_at": now,
        }
        deadline = to_naive_utc(goal.get("deadline"))
        if goal.get("has_deadline") and deadline is not None and now > deadline:
            changes["status"] = "failed"
            logger.info("Goal failed: %s by user %s", goal.get("title"), user_id)

        await self.goals.update_one(active, {"$set": changes})
        return True

    async def _grant_completion(self, goal: dict, user_id: str) -> None:
        logger.info("Goal completed: %s by user %s", goal.get("title"), user_id)
        xp_reward = int(goal.get("xp_reward") or 0)
        if xp_reward > 0:
            try:
                await self.xp_ledger.award(
                    user_id,
                    xp_reward,
                    "goal_completed",
                    source_id=str(goal["_id"]),
                    description=f"Goal completed: {goal.get('title', '')}",
                )
            except Exception:
                logger.exception("XP grant for goal %s failed for user %s", goal["_id"], user_id)

        if self.notifier is not None:
            self.notifier.notify(user_id, "goal_completed", {
                "title": "Goal Completed!",
                "message": f"You reached your goal: {goal.get('title', '')}",
                "action_url": f"/goals/{goal['_id']}",
                "priority": "normal",
                "goal_id": str(goal["_id"]),
                "xp_reward": xp_reward,
            })

    async def update_all_user_goals(self, user_id) -> int:
        return await self._refresh({"user_id": as_oid(user_id), "status": "active"}, user_id)

    async def check_goals_for_trigger(self, user_id, goal_types: Iterable[str]) -> int:
        types = list(goal_types)
        if not types or not is_oid(user_id):
            return 0
        return await self._refresh(
            {"user_id": as_oid(user_id), "status": "active", "type": {"$in": types}}, user_id
        )

    async def _refresh(self, query: Dict[str, Any], user_id) -> int:
        cursor = self.goals.find(query, {"_id": 1})
        updated = 0
        for goal in await cursor.to_list(length=None):
            if await self.update_progress(goal["_id"], user_id):
                updated += 1
        return updated

    async def get_user_goal_stats(self, user_id) -> GoalStats:
        cursor = self.goals.find({"user_id": as_oid(user_id)}, {"status": 1, "type": 1})
        rows = await cursor.to_list(length=None)

        by_status: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        for g in rows:
            by_status[g.get("status")] = by_status.get(g.get("status"), 0) + 1
            by_type[g.get("type")] = by_type.get(g.get("type"), 0) + 1

        return GoalStats(
            total=len(rows),
            active=by_status.get("active", 0),
            completed=by_status.get("completed", 0),
            failed=by_status.get("failed", 0),
            paused=by_status.get("paused", 0),
            by_type=by_type,
        )
