# gamify/routes/reward.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..models.reward_model import AchievementCategory, AchievementTier
from ..schemas.reward_schema import CriteriaProgress, GalleryResponse, RewardStats, UnlockedListResponse
from ..services.engine import GamificationEngine, get_engine
from ..utils.auth_utils import get_current_user


def build_reward_router(kind: str) -> APIRouter:
    """Same endpoints for achievements and badges; only the catalog behind them differs."""
    router = APIRouter(prefix=f"/{kind}s", tags=[f"{kind.capitalize()}s"])

    @router.get("/", response_model=GalleryResponse, summary=f"All active {kind}s with your progress")
    async def gallery(
        tier: Optional[AchievementTier] = Query(None),
        category: Optional[AchievementCategory] = Query(None),
        user=Depends(get_current_user),
        engine: GamificationEngine = Depends(get_engine),
    ):
        return await engine.catalog(kind).gallery(str(user["_id"]), tier=tier, category=category)

    @router.get("/me", response_model=UnlockedListResponse, summary=f"{kind.capitalize()}s you unlocked")
    async def mine(user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
        return await engine.catalog(kind).unlocked_for_user(str(user["_id"]))

    @router.get("/stats", response_model=RewardStats)
    async def stats(user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
        return await engine.catalog(kind).stats(str(user["_id"]))

    @router.get("/{reward_id}/progress", response_model=CriteriaProgress)
    async def progress(
        reward_id: str,
        user=Depends(get_current_user),
        engine: GamificationEngine = Depends(get_engine),
    ):
        definition = await engine.catalog(kind).get(reward_id)
        if not definition:
            raise HTTPException(status_code=404, detail=f"{kind.capitalize()} not found")
        return await engine.evaluator.progress(str(user["_id"]), definition.get("unlock_criteria"))

    @router.post("/{reward_id}/check", summary=f"Try to unlock one {kind} now")
    async def check(
        reward_id: str,
        user=Depends(get_current_user),
        engine: GamificationEngine = Depends(get_engine),
    ):
        if not await engine.catalog(kind).get(reward_id):
            raise HTTPException(status_code=404, detail=f"{kind.capitalize()} not found")
        unlocked = await engine.ledger(kind).try_unlock(str(user["_id"]), reward_id)
        return {"unlocked": unlocked}

    return router


achievements_router = build_reward_router("achievement")
badges_router = build_reward_router("badge")
