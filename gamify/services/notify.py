# gamify/services/notify.py
import logging
from typing import Any, Dict, Optional

from ..db.mongo import NOTIFICATIONS
from ..utils.datetime_utils import utcnow
from ..utils.mongo_utils import as_oid
from .background import BackgroundTasks

logger = logging.getLogger(__name__)


class Notifier:
    """
    In-app notification sink. Push/email delivery picks these documents up elsewhere.
    ``notify`` is fire-and-forget: it schedules the write and returns immediately.
    """

    def __init__(self, database, background: BackgroundTasks):
        self.collection = database[NOTIFICATIONS]
        self.background = background

    def notify(self, user_id: str, kind: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self.background.submit(self.deliver(user_id, kind, payload or {}), name=f"notify:{kind}")

    async def deliver(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        doc = {
            "user_id": as_oid(user_id),
            "type": kind,
            "title": payload.get("title", ""),
            "message": payload.get("message", ""),
            "action_url": payload.get("action_url"),
            "priority": payload.get("priority", "normal"),
            "data": {k: v for k, v in payload.items() if k not in ("title", "message", "action_url", "priority")},
            "read": False,
            "created_at": utcnow(),
        }
        await self.collection.insert_one(doc)
        logger.debug("Notification %s queued for user %s", kind, user_id)
