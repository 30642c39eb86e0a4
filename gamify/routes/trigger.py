# gamify/routes/trigger.py
from fastapi import APIRouter, Depends

from ..schemas.trigger_schema import TriggerRequest, TriggerResult
from ..services.engine import GamificationEngine, get_engine
from ..utils.auth_utils import get_current_user

router = APIRouter(prefix="/gamification", tags=["Gamification"])


@router.post("/triggers", response_model=TriggerResult, summary="Report a domain event for the current user")
async def post_trigger(
    body: TriggerRequest,
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    return await engine.handle_trigger(str(user["_id"]), body.trigger_type, body.payload)
