# gamify/controllers/criteria_controller.py
"""
Unlock-criteria evaluation shared by every reward kind.

A stored descriptor ``{type, value, ...extra}`` is parsed into one closed variant per
known ``type``. Each variant knows how to measure ``(current, target)`` for a user;
anything unrecognised or malformed becomes ``UnknownCriteria``, which can never be
satisfied. New criteria are added as new variants registered in ``CRITERIA_VARIANTS``.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Literal, Mapping, Optional, Tuple, Type, Union

from pydantic import AliasChoices, BaseModel, Field, NonNegativeInt, ValidationError

from ..schemas.reward_schema import CriteriaProgress
from ..services.activity_store import ActivityStore
from ..utils.mongo_utils import percent

logger = logging.getLogger(__name__)

QUIZ_PASSING_SCORE = float(os.getenv("QUIZ_PASSING_SCORE", "70"))

Measurement = Tuple[int, int]


def _target(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)) and value >= 1:
        return int(value)
    return 1


class Criteria(BaseModel):
    type: str
    value: Any = None

    model_config = {"extra": "allow", "populate_by_name": True}

    @property
    def target(self) -> int:
        return _target(self.value)

    async def measure(self, activity: ActivityStore, user_id: str, payload: Mapping[str, Any]) -> Measurement:
        raise NotImplementedError


# ── user-record criteria ─────────────────────────────────────────────────────
class ReachLevelCriteria(Criteria):
    type: Literal["reach_level"]
    value: Optional[NonNegativeInt] = None

    async def measure(self, activity, user_id, payload):
        user = await activity.get_user(user_id, {"level": 1})
        current = int(user.get("level") or 1) if user else 0
        return current, self.target


class EarnXPCriteria(Criteria):
    type: Literal["earn_xp"]
    value: Optional[NonNegativeInt] = None

    async def measure(self, activity, user_id, payload):
        user = await activity.get_user(user_id, {"xp": 1})
        current = int(user.get("xp") or 0) if user else 0
        return current, self.target


# ── course / submission criteria ─────────────────────────────────────────────
class CompleteCourseCriteria(Criteria):
    """value = a course id (that course, 0/1) or a number of distinct courses."""
    type: Literal["complete_course"]
    value: Union[NonNegativeInt, str, None] = None

    @property
    def target(self) -> int:
        return 1 if isinstance(self.value, str) else _target(self.value)

    async def measure(self, activity, user_id, payload):
        if isinstance(self.value, str):
            done = await activity.has_completed_course(user_id, self.value)
            return (1 if done else 0), 1
        courses = await activity.distinct_completed_courses(user_id)
        return len(courses), self.target


class CompleteAssignmentsCriteria(Criteria):
    type: Literal["complete_assignments"]
    value: Optional[NonNegativeInt] = None

    async def measure(self, activity, user_id, payload):
        return await activity.count_graded_submissions(user_id), self.target


class PassQuizzesCriteria(Criteria):
    type: Literal["pass_quizzes"]
    value: Optional[NonNegativeInt] = None
    passing_score: float = Field(
        default=QUIZ_PASSING_SCORE,
        validation_alias=AliasChoices("passing_score", "passingScore"),
    )

    async def measure(self, activity, user_id, payload):
        passed = await activity.count_graded_submissions(user_id, min_score=self.passing_score)
        return passed, self.target


class CompleteCourseTypeCriteria(Criteria):
    """value = course type; extra ``count`` = how many courses of that type."""
    type: Literal["complete_course_type"]
    value: str
    count: NonNegativeInt = 1

    @property
    def target(self) -> int:
        return _target(self.count)

    async def measure(self, activity, user_id, payload):
        course_ids = await activity.course_ids_of_type(self.value)
        if not course_ids:
            return 0, self.target
        completed = await activity.distinct_completed_courses(user_id, course_ids=course_ids)
        return len(completed), self.target


class PerfectScoreCriteria(Criteria):
    type: Literal["perfect_score"]
    value: Optional[NonNegativeInt] = None

    async def measure(self, activity, user_id, payload):
        return await activity.count_perfect_scores(user_id), self.target


class FirstCompletionCriteria(Criteria):
    """Satisfied only when the triggering course lists this user as its first completer."""
    type: Literal["first_completion"]

    @property
    def target(self) -> int:
        return 1

    async def measure(self, activity, user_id, payload):
        course_id = payload.get("course_id") or payload.get("courseId")
        if not course_id:
            return 0, 1
        first = await activity.first_completer_of_course(course_id)
        return (1 if first is not None and str(first) == str(user_id) else 0), 1


# ── social / project criteria ────────────────────────────────────────────────
class ShareProjectsCriteria(Criteria):
    type: Literal["share_projects"]
    value: Optional[NonNegativeInt] = None

    async def measure(self, activity, user_id, payload):
        return await activity.count_public_projects(user_id), self.target


class ProjectLikesCriteria(Criteria):
    """value = likes a project needs; extra ``count`` = how many such projects."""
    type: Literal["project_likes"]
    value: NonNegativeInt
    count: NonNegativeInt = 1

    @property
    def target(self) -> int:
        return _target(self.count)

    async def measure(self, activity, user_id, payload):
        return await activity.count_public_projects(user_id, min_likes=self.value), self.target


class CreatePostsCriteria(Criteria):
    type: Literal["create_posts"]
    value: Optional[NonNegativeInt] = None

    async def measure(self, activity, user_id, payload):
        return await activity.count_posts(user_id), self.target


class ReceiveLikesCriteria(Criteria):
    type: Literal["receive_likes"]
    value: Optional[NonNegativeInt] = None

    async def measure(self, activity, user_id, payload):
        return await activity.sum_likes_received(user_id), self.target


# ── declared, not tracked yet ────────────────────────────────────────────────
class CompleteLessonsCriteria(Criteria):
    # No lesson-completion records exist yet, so this never progresses.
    type: Literal["complete_lessons"]

    async def measure(self, activity, user_id, payload):
        return 0, self.target


class MaintainStreakCriteria(Criteria):
    # No streak tracking exists yet, so this never progresses.
    type: Literal["maintain_streak"]

    async def measure(self, activity, user_id, payload):
        return 0, self.target


class UnknownCriteria(Criteria):
    """Catch-all for unrecognised or malformed descriptors. Never satisfied."""

    async def measure(self, activity, user_id, payload):
        return 0, self.target


CRITERIA_VARIANTS: Dict[str, Type[Criteria]] = {
    "reach_level": ReachLevelCriteria,
    "earn_xp": EarnXPCriteria,
    "complete_course": CompleteCourseCriteria,
    "complete_lessons": CompleteLessonsCriteria,
    "complete_assignments": CompleteAssignmentsCriteria,
    "pass_quizzes": PassQuizzesCriteria,
    "share_projects": ShareProjectsCriteria,
    "create_posts": CreatePostsCriteria,
    "receive_likes": ReceiveLikesCriteria,
    "maintain_streak": MaintainStreakCriteria,
    "complete_course_type": CompleteCourseTypeCriteria,
    "project_likes": ProjectLikesCriteria,
    "perfect_score": PerfectScoreCriteria,
    "first_completion": FirstCompletionCriteria,
}


def parse_criteria(descriptor: Any) -> Criteria:
    if isinstance(descriptor, BaseModel):
        descriptor = descriptor.model_dump()
    if not isinstance(descriptor, Mapping):
        logger.warning("Criteria descriptor is not a mapping: %r", descriptor)
        return UnknownCriteria(type=str(descriptor))

    kind = descriptor.get("type")
    variant = CRITERIA_VARIANTS.get(kind)
    if variant is None:
        logger.warning("Unknown criteria type: %s", kind)
        return UnknownCriteria(type=str(kind), value=descriptor.get("value"))

    try:
        return variant.model_validate(dict(descriptor))
    except ValidationError as exc:
        logger.warning("Invalid parameters for %s criteria: %s", kind, exc.errors())
        return UnknownCriteria(type=str(kind), value=descriptor.get("value"))


class CriteriaEvaluator:
    """
    ``progress`` and ``evaluate`` share one measurement, so
    ``evaluate(u, d) == (progress(u, d).current >= progress(u, d).target)`` always holds.
    Lookup failures fail closed: they read as zero progress, never as a grant.
    """

    def __init__(self, activity: ActivityStore):
        self.activity = activity

    async def progress(
        self,
        user_id: str,
        descriptor: Any,
        trigger_payload: Optional[Mapping[str, Any]] = None,
    ) -> CriteriaProgress:
        criteria = parse_criteria(descriptor)
        try:
            current, target = await criteria.measure(self.activity, user_id, trigger_payload or {})
        except Exception:
            logger.exception("Error evaluating %s criteria for user %s", criteria.type, user_id)
            return CriteriaProgress(current=0, target=criteria.target, percentage=0)

        target = max(1, int(target))
        current = max(0, int(current))
        return CriteriaProgress(current=current, target=target, percentage=percent(current, target))

    async def evaluate(
        self,
        user_id: str,
        descriptor: Any,
        trigger_payload: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        result = await self.progress(user_id, descriptor, trigger_payload)
        return result.satisfied
