# gamify/routes/goal.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..models.goal_model import LearningGoalModel
from ..schemas.goal_schema import GoalCreateRequest, GoalStats, GoalUpdateRequest
from ..schemas.result_schema import ActionResult
from ..services.engine import GamificationEngine, get_engine
from ..utils.auth_utils import get_current_user
from ..utils.http_utils import raise_for_result

router = APIRouter(prefix="/goals", tags=["Learning Goals"])


async def _goal_or_404(engine: GamificationEngine, goal_id: str, user_id: str) -> LearningGoalModel:
    goal = await engine.goals.get_goal(goal_id, user_id)
    if not goal:
        raise HTTPException(status_code=404, detail="Goal not found")
    return goal


@router.get("/", response_model=List[LearningGoalModel])
async def list_goals(
    status: Optional[str] = Query(None, pattern="^(active|paused|completed|failed)$"),
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    return await engine.goals.list_goals(str(user["_id"]), status=status)


@router.post("/", response_model=LearningGoalModel, status_code=201)
async def create_goal(
    body: GoalCreateRequest,
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    return await engine.goals.create_goal(str(user["_id"]), body)


@router.get("/stats", response_model=GoalStats)
async def goal_stats(user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
    return await engine.goals.get_user_goal_stats(str(user["_id"]))


@router.post("/refresh", summary="Recompute all your active goals")
async def refresh_all(user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
    updated = await engine.goals.update_all_user_goals(str(user["_id"]))
    return {"success": True, "message": "All goals updated successfully", "updated": updated}


@router.get("/{goal_id}", response_model=LearningGoalModel)
async def get_goal(goal_id: str, user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
    return await _goal_or_404(engine, goal_id, str(user["_id"]))


@router.patch("/{goal_id}", response_model=LearningGoalModel)
async def update_goal(
    goal_id: str,
    body: GoalUpdateRequest,
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    raise_for_result(await engine.goals.update_goal(goal_id, str(user["_id"]), body))
    return await _goal_or_404(engine, goal_id, str(user["_id"]))


@router.delete("/{goal_id}", response_model=ActionResult)
async def delete_goal(goal_id: str, user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
    return raise_for_result(await engine.goals.delete_goal(goal_id, str(user["_id"])))


@router.post("/{goal_id}/pause", response_model=ActionResult)
async def pause_goal(goal_id: str, user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
    return raise_for_result(await engine.goals.set_paused(goal_id, str(user["_id"]), True))


@router.post("/{goal_id}/resume", response_model=ActionResult)
async def resume_goal(goal_id: str, user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
    return raise_for_result(await engine.goals.set_paused(goal_id, str(user["_id"]), False))


@router.post("/{goal_id}/progress", response_model=LearningGoalModel, summary="Recompute one goal now")
async def refresh_goal(goal_id: str, user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
    await _goal_or_404(engine, goal_id, str(user["_id"]))
    await engine.goals.update_progress(goal_id, str(user["_id"]))
    return await _goal_or_404(engine, goal_id, str(user["_id"]))
