# gamify/controllers/xp_controller.py
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from pymongo import ReturnDocument

from ..db.mongo import USERS, XP_TRANSACTIONS
from ..models.xp_model import XPSource, XPTransactionModel
from ..schemas.xp_schema import LevelProgress, XPAwardResult, XPSummary, XPTransactionOut
from ..services.activity_store import ActivityStore
from ..services.background import BackgroundTasks
from ..services.notify import Notifier
from ..utils.datetime_utils import utcnow
from ..utils.level_utils import calculate_level, level_progress
from ..utils.mongo_utils import as_oid, is_oid

logger = logging.getLogger(__name__)

TriggerHook = Callable[[str, str, Dict[str, Any]], Awaitable[Any]]


class UserNotFoundError(LookupError):
    pass


class XPLedger:
    """
    Append-only XP ledger plus the cached ``users.xp`` / ``users.level``.

    Every change to the cache is paired with exactly one ``xp_transactions`` row,
    so ``users.xp == sum(amount)`` and the cache can always be rebuilt.
    """

    def __init__(
        self,
        database,
        notifier: Optional[Notifier] = None,
        background: Optional[BackgroundTasks] = None,
    ):
        self.users = database[USERS]
        self.transactions = database[XP_TRANSACTIONS]
        self.activity = ActivityStore(database)
        self.notifier = notifier
        self.background = background
        # Set by the engine; receives the xp_earned / level_up follow-up triggers.
        self.on_trigger: Optional[TriggerHook] = None

    async def award(
        self,
        user_id: str,
        amount: int,
        source: XPSource,
        source_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> XPAwardResult:
        if amount is None or amount <= 0:
            return XPAwardResult()

        uid = as_oid(user_id)
        # $inc is the atomic step; the returned doc tells us the XP we actually landed on.
        after = await self.users.find_one_and_update(
            {"_id": uid},
            {"$inc": {"xp": int(amount)}},
            projection={"xp": 1, "level": 1},
            return_document=ReturnDocument.AFTER,
        )
        if after is None:
            raise UserNotFoundError(f"User {user_id} not found")

        new_xp = int(after.get("xp") or 0)
        old_xp = new_xp - int(amount)
        old_level = int(after.get("level") or calculate_level(old_xp))
        new_level = calculate_level(new_xp)

        try:
            await self.transactions.insert_one({
                "user_id": uid,
                "amount": int(amount),
                "source": source,
                "source_id": as_oid(source_id) if source_id and is_oid(source_id) else source_id,
                "description": description,
                "created_at": utcnow(),
            })
        except Exception:
            # No ledger row, so the cached xp must not keep the increment.
            logger.exception("Failed to record %s XP for user %s; reverting cached xp", amount, user_id)
            await self.users.update_one({"_id": uid}, {"$inc": {"xp": -int(amount)}})
            raise

        # $max keeps level monotonic when awards for the same user interleave.
        await self.users.update_one(
            {"_id": uid},
            {"$max": {"level": new_level}, "$set": {"updated_at": utcnow()}},
        )

        leveled_up = new_level > old_level
        logger.info(
            "Awarded %s XP to user %s for %s. Level: %s -> %s",
            amount, user_id, source, old_level, new_level,
        )

        if leveled_up and self.notifier is not None:
            self.notifier.notify(str(uid), "level_up", {
                "title": "Level Up!",
                "message": f"Congratulations! You've reached level {new_level}!",
                "action_url": f"/profile/{uid}",
                "priority": "high",
                "level": new_level,
            })

        self._fan_out(str(uid), old_xp, new_xp, int(amount), old_level, new_level, leveled_up)
        return XPAwardResult(leveled_up=leveled_up, new_level=new_level if leveled_up else None)

    def _fan_out(self, user_id, old_xp, new_xp, amount, old_level, new_level, leveled_up) -> None:
        if self.on_trigger is None or self.background is None:
            return
        self.background.submit(
            self.on_trigger(user_id, "xp_earned", {"old_xp": old_xp, "new_xp": new_xp, "amount": amount}),
            name=f"trigger:xp_earned:{user_id}",
        )
        if leveled_up:
            self.background.submit(
                self.on_trigger(user_id, "level_up", {"old_level": old_level, "new_level": new_level}),
                name=f"trigger:level_up:{user_id}",
            )

    async def ledger_total(self, user_id: str) -> int:
        return await self.activity.sum_xp(user_id)

    async def reconcile(self, user_id: str) -> Dict[str, int]:
        """Rebuild the cached xp/level from the ledger sum."""
        total = await self.ledger_total(user_id)
        level = calculate_level(total)
        result = await self.users.update_one(
            {"_id": as_oid(user_id)},
            {"$set": {"xp": total, "level": level, "updated_at": utcnow()}},
        )
        if result.matched_count == 0:
            raise UserNotFoundError(f"User {user_id} not found")
        return {"xp": total, "level": level}

    async def get_summary(self, user_id: str, recent: int = 10) -> XPSummary:
        user = await self.users.find_one({"_id": as_oid(user_id)}, {"xp": 1, "level": 1})
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")

        xp = int(user.get("xp") or 0)
        level = int(user.get("level") or calculate_level(xp))
        cursor = self.transactions.find(
            {"user_id": as_oid(user_id)},
            sort=[("created_at", -1), ("_id", -1)],
            limit=max(0, recent),
        )
        rows = await cursor.to_list(length=None) if recent > 0 else []
        return XPSummary(
            user_id=str(user["_id"]),
            xp=xp,
            level=level,
            level_progress=LevelProgress(**level_progress(xp, level)),
            recent=[
                XPTransactionOut(**XPTransactionModel(**r).model_dump(exclude={"id", "user_id"}))
                for r in rows
            ],
        )
