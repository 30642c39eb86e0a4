# gamify/routes/xp.py
from fastapi import APIRouter, Depends, Query

from ..schemas.xp_schema import XPSummary
from ..services.engine import GamificationEngine, get_engine
from ..utils.auth_utils import get_current_user

router = APIRouter(prefix="/xp", tags=["XP"])


@router.get("/me", response_model=XPSummary, summary="Your XP, level progress and recent transactions")
async def my_xp(
    recent: int = Query(10, ge=0, le=100),
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    return await engine.xp.get_summary(str(user["_id"]), recent=recent)
