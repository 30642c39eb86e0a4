# gamify/controllers/unlock_controller.py
"""
Catalog + unlock ledger for one reward kind.

Achievements and badges are two instances of the same pair, configured by a
``RewardKind``. Both share a single ``CriteriaEvaluator``; neither inherits from
the other.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pymongo.errors import DuplicateKeyError

from ..db.mongo import ACHIEVEMENTS, BADGES, USER_ACHIEVEMENTS, USER_BADGES
from ..models.reward_model import BADGE_XP_REWARD
from ..schemas.reward_schema import (
    GalleryItem,
    GalleryResponse,
    RewardOut,
    RewardStats,
    UnlockedListResponse,
    UnlockedRewardEntry,
)
from ..services.notify import Notifier
from ..utils.datetime_utils import utcnow
from ..utils.mongo_utils import as_oid, is_oid
from .criteria_controller import CriteriaEvaluator
from .xp_controller import XPLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewardKind:
    name: str
    catalog_collection: str
    unlock_collection: str
    reward_field: str
    xp_source: str
    notification_kind: str
    notification_title: str
    default_xp: int = 0


ACHIEVEMENT_KIND = RewardKind(
    name="achievement",
    catalog_collection=ACHIEVEMENTS,
    unlock_collection=USER_ACHIEVEMENTS,
    reward_field="achievement_id",
    xp_source="achievement_unlocked",
    notification_kind="achievement_unlocked",
    notification_title="Achievement Unlocked!",
)

BADGE_KIND = RewardKind(
    name="badge",
    catalog_collection=BADGES,
    unlock_collection=USER_BADGES,
    reward_field="badge_id",
    xp_source="badge_earned",
    notification_kind="badge_earned",
    notification_title="Badge Earned!",
    default_xp=BADGE_XP_REWARD,
)


def reward_xp(kind: RewardKind, definition: Dict[str, Any]) -> int:
    value = definition.get("xp_reward")
    if value is None:
        return kind.default_xp
    return max(0, int(value))


def to_reward_out(kind: RewardKind, doc: Dict[str, Any]) -> RewardOut:
    return RewardOut(
        id=str(doc["_id"]),
        name=doc.get("name", ""),
        description=doc.get("description") or "",
        icon=doc.get("icon"),
        xp_reward=reward_xp(kind, doc),
        tier=doc.get("tier"),
        category=doc.get("category"),
        unlock_criteria=dict(doc.get("unlock_criteria") or {}),
    )


class RewardCatalog:
    """Read side of one reward kind: active definitions and per-user views over them."""

    def __init__(self, database, kind: RewardKind, evaluator: CriteriaEvaluator):
        self.kind = kind
        self.definitions = database[kind.catalog_collection]
        self.unlocks = database[kind.unlock_collection]
        self.evaluator = evaluator

    async def get(self, reward_id) -> Optional[dict]:
        if not is_oid(reward_id):
            return None
        return await self.definitions.find_one({"_id": as_oid(reward_id)})

    async def find_active_by_criteria_types(self, criteria_types: Iterable[str]) -> List[dict]:
        types = list(criteria_types)
        if not types:
            return []
        cursor = self.definitions.find(
            {"is_active": True, "unlock_criteria.type": {"$in": types}},
            sort=[("_id", 1)],
        )
        return await cursor.to_list(length=None)

    async def list_active(self, tier: Optional[str] = None, category: Optional[str] = None) -> List[dict]:
        query: Dict[str, Any] = {"is_active": True}
        if tier:
            query["tier"] = tier
        if category:
            query["category"] = category
        cursor = self.definitions.find(query, sort=[("_id", 1)])
        return await cursor.to_list(length=None)

    async def unlocked_map(self, user_id) -> Dict[str, datetime]:
        """reward id (str) -> unlocked_at for everything the user holds."""
        cursor = self.unlocks.find(
            {"user_id": as_oid(user_id)},
            {self.kind.reward_field: 1, "unlocked_at": 1},
        )
        rows = await cursor.to_list(length=None)
        return {str(r[self.kind.reward_field]): r.get("unlocked_at") for r in rows}

    async def gallery(
        self,
        user_id,
        tier: Optional[str] = None,
        category: Optional[str] = None,
    ) -> GalleryResponse:
        definitions = await self.list_active(tier=tier, category=category)
        unlocked = await self.unlocked_map(user_id)

        items: List[GalleryItem] = []
        for doc in definitions:
            base = to_reward_out(self.kind, doc).model_dump()
            if str(doc["_id"]) in unlocked:
                items.append(GalleryItem(**base, unlocked=True))
                continue
            progress = await self.evaluator.progress(user_id, doc.get("unlock_criteria"))
            items.append(GalleryItem(**base, unlocked=False, progress=progress))
        return GalleryResponse(count=len(items), gallery=items)

    async def unlocked_for_user(self, user_id) -> UnlockedListResponse:
        cursor = self.unlocks.find(
            {"user_id": as_oid(user_id)},
            sort=[("unlocked_at", -1), ("_id", -1)],
        )
        rows = await cursor.to_list(length=None)

        ids = [r[self.kind.reward_field] for r in rows]
        defs = await self.definitions.find({"_id": {"$in": ids}}).to_list(length=None) if ids else []
        by_id = {d["_id"]: d for d in defs}

        items = []
        for r in rows:
            doc = by_id.get(r[self.kind.reward_field])
            if doc is None:
                # Definition was removed from the catalog; the unlock still stands.
                continue
            items.append(UnlockedRewardEntry(reward=to_reward_out(self.kind, doc), unlocked_at=r["unlocked_at"]))
        return UnlockedListResponse(user_id=str(as_oid(user_id)), count=len(items), items=items)

    async def stats(self, user_id) -> RewardStats:
        definitions = await self.list_active()
        unlocked = await self.unlocked_map(user_id)

        total = len(definitions)
        earned = [d for d in definitions if str(d["_id"]) in unlocked]
        by_tier: Dict[str, int] = {}
        by_category: Dict[str, int] = {}
        for d in earned:
            if d.get("tier"):
                by_tier[d["tier"]] = by_tier.get(d["tier"], 0) + 1
            if d.get("category"):
                by_category[d["category"]] = by_category.get(d["category"], 0) + 1

        return RewardStats(
            total=total,
            unlocked=len(earned),
            progress=round(len(earned) / total * 100, 2) if total else 0.0,
            by_tier=by_tier,
            by_category=by_category,
        )


class UnlockLedger:
    """
    Write side of one reward kind. ``try_unlock`` grants a reward at most once per user;
    the unique (user_id, reward) index is what makes that hold under concurrency.
    """

    def __init__(
        self,
        database,
        catalog: RewardCatalog,
        evaluator: CriteriaEvaluator,
        xp_ledger: XPLedger,
        notifier: Optional[Notifier] = None,
    ):
        self.kind = catalog.kind
        self.catalog = catalog
        self.unlocks = database[self.kind.unlock_collection]
        self.evaluator = evaluator
        self.xp_ledger = xp_ledger
        self.notifier = notifier

    async def has_unlocked(self, user_id, reward_id) -> bool:
        found = await self.unlocks.find_one(
            {"user_id": as_oid(user_id), self.kind.reward_field: as_oid(reward_id)},
            {"_id": 1},
        )
        return found is not None

    async def try_unlock(
        self,
        user_id,
        reward_id,
        trigger_payload: Optional[Dict[str, Any]] = None,
        definition: Optional[dict] = None,
    ) -> bool:
        if not (is_oid(user_id) and is_oid(reward_id)):
            return False

        if await self.has_unlocked(user_id, reward_id):
            return False

        if definition is None:
            definition = await self.catalog.get(reward_id)
        if not definition or not definition.get("is_active", False):
            return False

        if not await self.evaluator.evaluate(user_id, definition.get("unlock_criteria"), trigger_payload):
            return False

        try:
            await self.unlocks.insert_one({
                "user_id": as_oid(user_id),
                self.kind.reward_field: as_oid(reward_id),
                "unlocked_at": utcnow(),
            })
        except DuplicateKeyError:
            # Lost the race to a concurrent unlock of the same pair.
            return False

        name = definition.get("name", "")
        logger.info("User %s unlocked %s %s (%s)", user_id, self.kind.name, reward_id, name)

        amount = reward_xp(self.kind, definition)
        if amount > 0:
            try:
                await self.xp_ledger.award(
                    str(user_id),
                    amount,
                    self.kind.xp_source,
                    source_id=str(reward_id),
                    description=f"Unlocked {self.kind.name}: {name}",
                )
            except Exception:
                # The unlock stands; the XP grant is not retried.
                logger.exception(
                    "XP grant of %s for %s %s failed for user %s",
                    amount, self.kind.name, reward_id, user_id,
                )

        if self.notifier is not None:
            self.notifier.notify(str(user_id), self.kind.notification_kind, {
                "title": self.kind.notification_title,
                "message": f"You've unlocked: {name}",
                "action_url": f"/{self.kind.name}s",
                "priority": "normal",
                f"{self.kind.name}_id": str(reward_id),
                "xp_reward": amount,
            })
        return True
