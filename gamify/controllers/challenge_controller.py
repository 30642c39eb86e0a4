# gamify/controllers/challenge_controller.py
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pymongo import UpdateOne
from pymongo.errors import DuplicateKeyError

from ..db.mongo import CHALLENGE_PARTICIPANTS, CHALLENGES, USERS
from ..models.challenge_model import ChallengeParticipantModel, EligibilityCriteria
from ..schemas.challenge_schema import ParticipantOut, ParticipationsResponse, StatusSweepResult
from ..schemas.leaderboard_schema import LeaderboardEntry
from ..schemas.result_schema import ActionResult
from ..services.activity_store import ActivityStore
from ..services.notify import Notifier
from ..services.user_directory import load_user_cards, to_leaderboard_user
from ..utils.datetime_utils import to_naive_utc, utcnow
from ..utils.mongo_utils import as_oid, is_oid, percent
from .xp_controller import XPLedger

logger = logging.getLogger(__name__)

_LATEST = datetime.max


def effective_status(challenge: dict, now: Optional[datetime] = None) -> str:
    """Status implied by the date window. A stored ``ended`` is terminal."""
    now = now or utcnow()
    if challenge.get("status") == "ended":
        return "ended"
    start = to_naive_utc(challenge.get("start_date"))
    end = to_naive_utc(challenge.get("end_date"))
    if end is not None and now > end:
        return "ended"
    if start is not None and now >= start:
        return "active"
    return "upcoming"


def check_eligibility(user: Optional[dict], challenge: dict) -> Optional[str]:
    """Returns the rejection reason, or None when the user may join."""
    if not user:
        return "User not found"

    rules = EligibilityCriteria(**(challenge.get("eligibility_criteria") or {}))
    min_level = rules.min_level
    if min_level and int(user.get("level") or 1) < min_level:
        return f"Minimum level {min_level} required"

    min_xp = rules.min_xp
    if min_xp and int(user.get("xp") or 0) < min_xp:
        return f"Minimum {min_xp} XP required"

    tier = rules.subscription_tier
    if tier and tier != "all" and (user.get("subscription_tier") or "free") != tier:
        return f"{tier} subscription required"
    return None


def participant_sort_key(p: dict):
    # current_value desc, earliest completion first, then join order
    return (
        -int(p.get("current_value") or 0),
        p.get("completed_at") or _LATEST,
        p.get("joined_at") or _LATEST,
        p["_id"],
    )


def to_participant_out(p: dict, challenge: Optional[dict] = None) -> ParticipantOut:
    return ParticipantOut(
        challenge_id=str(p["challenge_id"]),
        challenge_title=(challenge or {}).get("title"),
        user_id=str(p["user_id"]),
        current_value=int(p.get("current_value") or 0),
        progress_percentage=int(p.get("progress_percentage") or 0),
        rank=p.get("rank"),
        is_completed=bool(p.get("is_completed")),
        completed_at=p.get("completed_at"),
        joined_at=p.get("joined_at"),
    )


class ChallengeProgressEngine:
    def __init__(
        self,
        database,
        activity: ActivityStore,
        xp_ledger: XPLedger,
        notifier: Optional[Notifier] = None,
    ):
        self.challenges = database[CHALLENGES]
        self.participants = database[CHALLENGE_PARTICIPANTS]
        self.users = database[USERS]
        self.activity = activity
        self.xp_ledger = xp_ledger
        self.notifier = notifier

    async def get_challenge(self, challenge_id) -> Optional[dict]:
        if not is_oid(challenge_id):
            return None
        return await self.challenges.find_one({"_id": as_oid(challenge_id)})

    async def get_participant(self, challenge_id, user_id) -> Optional[dict]:
        if not (is_oid(challenge_id) and is_oid(user_id)):
            return None
        return await self.participants.find_one(
            {"challenge_id": as_oid(challenge_id), "user_id": as_oid(user_id)}
        )

    # ── join / leave ───────────────────────────────────────────────────────
    async def join_challenge(self, user_id, challenge_id) -> ActionResult:
        challenge = await self.get_challenge(challenge_id)
        if not challenge:
            return ActionResult.not_found("Challenge not found")

        if effective_status(challenge) == "ended":
            return ActionResult.fail("Challenge has ended")

        max_participants = challenge.get("max_participants")
        if max_participants and int(challenge.get("participant_count") or 0) >= max_participants:
            return ActionResult.fail("Challenge is full")

        user = None
        if is_oid(user_id):
            user = await self.activity.get_user(user_id, {"level": 1, "xp": 1, "subscription_tier": 1})
        reason = check_eligibility(user, challenge)
        if reason:
            return ActionResult.fail(reason)

        if await self.get_participant(challenge_id, user_id):
            return ActionResult.fail("Already participating in this challenge")

        # Reserve a slot first so concurrent joins can't overfill the challenge.
        slot_filter: Dict[str, Any] = {"_id": challenge["_id"]}
        if max_participants:
            slot_filter["participant_count"] = {"$lt": max_participants}
        reserved = await self.challenges.find_one_and_update(
            slot_filter, {"$inc": {"participant_count": 1}}
        )
        if reserved is None:
            return ActionResult.fail("Challenge is full")

        doc = ChallengeParticipantModel(challenge_id=challenge["_id"], user_id=user_id).model_dump(exclude={"id"})
        doc["challenge_id"] = challenge["_id"]
        doc["user_id"] = as_oid(user_id)
        try:
            await self.participants.insert_one(doc)
        except DuplicateKeyError:
            await self._release_slot(challenge["_id"])
            return ActionResult.fail("Already participating in this challenge")

        logger.info("User %s joined challenge %s", user_id, challenge_id)
        return ActionResult.ok("Successfully joined challenge")

    async def leave_challenge(self, user_id, challenge_id) -> ActionResult:
        if not (is_oid(challenge_id) and is_oid(user_id)):
            return ActionResult.not_found("Not participating in this challenge")

        res = await self.participants.delete_one(
            {"challenge_id": as_oid(challenge_id), "user_id": as_oid(user_id)}
        )
        if res.deleted_count == 0:
            return ActionResult.not_found("Not participating in this challenge")

        await self._release_slot(as_oid(challenge_id))
        await self.update_challenge_rankings(challenge_id)
        logger.info("User %s left challenge %s", user_id, challenge_id)
        return ActionResult.ok("Left challenge")

    async def _release_slot(self, challenge_oid) -> None:
        await self.challenges.update_one(
            {"_id": challenge_oid, "participant_count": {"$gt": 0}},
            {"$inc": {"participant_count": -1}},
        )

    # ── progress ───────────────────────────────────────────────────────────
    async def measure(self, challenge: dict, user_id, current_value: int = 0) -> int:
        """Progress for one participant, counting only activity since the challenge started."""
        kind = challenge.get("type")
        since = to_naive_utc(challenge.get("start_date"))

        if kind == "complete_courses":
            return len(await self.activity.distinct_completed_courses(user_id, since=since))
        if kind == "earn_xp":
            return await self.activity.sum_xp(user_id, since=since)
        if kind == "reach_level":
            user = await self.activity.get_user(user_id, {"level": 1})
            return int(user.get("level") or 1) if user else 0
        if kind == "complete_assignments":
            return await self.activity.count_graded_submissions(user_id, since=since)
        if kind == "share_projects":
            return await self.activity.count_public_projects(user_id, since=since)
        if kind == "social_engagement":
            posts = await self.activity.count_posts(user_id, since=since)
            comments = await self.activity.count_comments(user_id, since=since)
            likes = await self.activity.sum_likes_received(user_id, since=since, include_comments=False)
            return posts + comments + likes
        # custom: progress is recorded by whoever owns the custom rule
        return current_value

    async def update_participant(self, challenge_id, user_id) -> bool:
        challenge = await self.get_challenge(challenge_id)
        if not challenge or effective_status(challenge) != "active":
            return False

        participant = await self.get_participant(challenge_id, user_id)
        if not participant or participant.get("is_completed"):
            return False

        try:
            current = await self.measure(challenge, user_id, int(participant.get("current_value") or 0))
        except Exception:
            logger.exception("Error measuring challenge %s for user %s", challenge_id, user_id)
            return False

        target = int(challenge.get("target_value") or 1)
        pid = participant["_id"]

        if current >= target:
            res = await self.participants.update_one(
                {"_id": pid, "is_completed": False},
                {"$set": {
                    "is_completed": True,
                    "completed_at": utcnow(),
                    "current_value": current,
                    "progress_percentage": 100,
                }},
            )
            if res.modified_count == 1:
                await self._grant_completion(challenge, participant)
        else:
            await self.participants.update_one(
                {"_id": pid, "is_completed": False},
                {"$set": {"current_value": current, "progress_percentage": percent(current, target)}},
            )

        await self.update_challenge_rankings(challenge["_id"])
        return True

    async def _grant_completion(self, challenge: dict, participant: dict) -> None:
        user_id = str(participant["user_id"])
        xp_reward = int(challenge.get("xp_reward") or 0)
        logger.info("User %s completed challenge %s", user_id, challenge["_id"])

        if xp_reward > 0:
            claim = await self.participants.update_one(
                {"_id": participant["_id"], "rewards_claimed.xp": False},
                {"$set": {"rewards_claimed.xp": True}},
            )
            if claim.modified_count == 1:
                try:
                    await self.xp_ledger.award(
                        user_id,
                        xp_reward,
                        "challenge_completed",
                        source_id=str(challenge["_id"]),
                        description=f"Challenge completed: {challenge.get('title', '')}",
                    )
                except Exception:
                    logger.exception(
                        "XP grant for challenge %s failed for user %s", challenge["_id"], user_id
                    )

        if self.notifier is not None:
            self.notifier.notify(user_id, "challenge_completed", {
                "title": "Challenge Completed!",
                "message": f"You completed the challenge: {challenge.get('title', '')}",
                "action_url": f"/challenges/{challenge['_id']}",
                "priority": "high",
                "challenge_id": str(challenge["_id"]),
                "xp_reward": xp_reward,
            })

    async def update_challenge_rankings(self, challenge_id) -> None:
        """Full re-rank: ranks 1..N with no gaps or duplicates."""
        cursor = self.participants.find(
            {"challenge_id": as_oid(challenge_id)},
            {"current_value": 1, "completed_at": 1, "joined_at": 1, "rank": 1},
        )
        rows = await cursor.to_list(length=None)
        rows.sort(key=participant_sort_key)

        ops = [
            UpdateOne({"_id": p["_id"]}, {"$set": {"rank": i}})
            for i, p in enumerate(rows, start=1)
            if p.get("rank") != i
        ]
        if ops:
            await self.participants.bulk_write(ops, ordered=False)

    # ── sweeps / hooks ─────────────────────────────────────────────────────
    async def update_challenge_statuses(self, now: Optional[datetime] = None) -> StatusSweepResult:
        now = now or utcnow()
        activated = await self.challenges.update_many(
            {"status": "upcoming", "start_date": {"$lte": now}, "end_date": {"$gte": now}},
            {"$set": {"status": "active", "updated_at": now}},
        )
        ended = await self.challenges.update_many(
            {"status": {"$in": ["upcoming", "active"]}, "end_date": {"$lt": now}},
            {"$set": {"status": "ended", "updated_at": now}},
        )
        if activated.modified_count or ended.modified_count:
            logger.info(
                "Challenge status sweep: %s activated, %s ended",
                activated.modified_count, ended.modified_count,
            )
        return StatusSweepResult(activated=activated.modified_count, ended=ended.modified_count)

    async def check_challenges_for_trigger(self, user_id, challenge_types: Iterable[str]) -> int:
        """Refresh the user's open participations in active challenges of the given types."""
        types = list(challenge_types)
        if not types or not is_oid(user_id):
            return 0

        now = utcnow()
        cursor = self.challenges.find(
            {
                "type": {"$in": types},
                "status": {"$ne": "ended"},
                "start_date": {"$lte": now},
                "end_date": {"$gte": now},
            },
            {"_id": 1},
        )
        challenge_ids = [c["_id"] for c in await cursor.to_list(length=None)]
        if not challenge_ids:
            return 0

        cursor = self.participants.find(
            {"user_id": as_oid(user_id), "challenge_id": {"$in": challenge_ids}, "is_completed": False},
            {"challenge_id": 1},
        )
        updated = 0
        for p in await cursor.to_list(length=None):
            try:
                if await self.update_participant(p["challenge_id"], user_id):
                    updated += 1
            except Exception:
                logger.exception("Error updating challenge %s for user %s", p["challenge_id"], user_id)
        return updated

    # ── read side ──────────────────────────────────────────────────────────
    async def get_challenge_leaderboard(
        self,
        challenge_id,
        limit: int = 10,
        offset: int = 0,
    ) -> List[LeaderboardEntry]:
        challenge = await self.get_challenge(challenge_id)
        if not challenge or not challenge.get("show_leaderboard", True):
            return []

        cursor = self.participants.find({"challenge_id": challenge["_id"]})
        rows = await cursor.to_list(length=None)
        rows.sort(key=participant_sort_key)
        start = 0
        if challenge.get("leaderboard_type", "top") != "all":
            start = offset
            rows = rows[offset:offset + limit]

        cards = await load_user_cards(self.users, [p["user_id"] for p in rows])
        entries = []
        for index, p in enumerate(rows):
            user = cards.get(p["user_id"])
            if user is None:
                continue
            entries.append(LeaderboardEntry(
                rank=p.get("rank") or start + index + 1,
                user=to_leaderboard_user(user),
                value=int(p.get("current_value") or 0),
                metadata={
                    "progress_percentage": int(p.get("progress_percentage") or 0),
                    "is_completed": bool(p.get("is_completed")),
                    "completed_at": p.get("completed_at"),
                },
            ))
        return entries

    async def get_user_challenges(self, user_id, status: Optional[str] = None) -> ParticipationsResponse:
        """status: 'active' (not completed) or 'completed'; anything else returns all."""
        query: Dict[str, Any] = {"user_id": as_oid(user_id)}
        if status == "completed":
            query["is_completed"] = True
        elif status == "active":
            query["is_completed"] = False

        cursor = self.participants.find(query, sort=[("joined_at", -1), ("_id", -1)])
        rows = await cursor.to_list(length=None)

        ids = list({p["challenge_id"] for p in rows})
        challenges = await self.challenges.find({"_id": {"$in": ids}}, {"title": 1}).to_list(length=None) if ids else []
        by_id = {c["_id"]: c for c in challenges}

        items = [to_participant_out(p, by_id.get(p["challenge_id"])) for p in rows]
        return ParticipationsResponse(user_id=str(as_oid(user_id)), count=len(items), participations=items)
