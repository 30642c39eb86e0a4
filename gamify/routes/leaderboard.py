# gamify/routes/leaderboard.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..controllers.leaderboard_controller import UnknownMetricError
from ..schemas.leaderboard_schema import LeaderboardResponse, RankResponse
from ..services.engine import GamificationEngine, get_engine
from ..utils.auth_utils import get_current_user

router = APIRouter(prefix="/leaderboards", tags=["Leaderboards"])


@router.get("/{metric}", response_model=LeaderboardResponse)
async def get_leaderboard(
    metric: str,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    course_id: Optional[str] = None,
    challenge_id: Optional[str] = None,
    category: Optional[str] = None,
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    try:
        entries = await engine.leaderboards.get_top_n(
            metric, limit=limit, offset=offset,
            course_id=course_id, challenge_id=challenge_id, category=category,
        )
        user_rank = await engine.leaderboards.get_user_rank(
            str(user["_id"]), metric, course_id=course_id, challenge_id=challenge_id,
        )
    except UnknownMetricError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return LeaderboardResponse(metric=metric, count=len(entries), leaderboard=entries, user_rank=user_rank)


@router.get("/{metric}/rank", response_model=RankResponse)
async def get_my_rank(
    metric: str,
    course_id: Optional[str] = None,
    challenge_id: Optional[str] = None,
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    try:
        rank = await engine.leaderboards.get_user_rank(
            str(user["_id"]), metric, course_id=course_id, challenge_id=challenge_id,
        )
    except UnknownMetricError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return RankResponse(metric=metric, user_id=str(user["_id"]), rank=rank)
