# gamify/routes/challenge.py
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..controllers.challenge_controller import to_participant_out
from ..schemas.challenge_schema import ParticipantOut, ParticipationsResponse, StatusSweepResult
from ..schemas.leaderboard_schema import LeaderboardEntry
from ..schemas.result_schema import ActionResult
from ..services.engine import GamificationEngine, get_engine
from ..utils.auth_utils import get_current_admin_user, get_current_user
from ..utils.http_utils import raise_for_result

router = APIRouter(prefix="/challenges", tags=["Challenges"])


@router.get("/me", response_model=ParticipationsResponse, summary="Challenges you joined")
async def my_challenges(
    status: Optional[str] = Query(None, pattern="^(active|completed)$"),
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    return await engine.challenges.get_user_challenges(str(user["_id"]), status=status)


@router.post("/statuses", response_model=StatusSweepResult, summary="Advance challenge statuses by date (admin)")
async def sweep_statuses(
    admin=Depends(get_current_admin_user),
    engine: GamificationEngine = Depends(get_engine),
):
    return await engine.challenges.update_challenge_statuses()


@router.post("/{challenge_id}/join", response_model=ActionResult)
async def join(challenge_id: str, user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
    return raise_for_result(await engine.challenges.join_challenge(str(user["_id"]), challenge_id))


@router.delete("/{challenge_id}/leave", response_model=ActionResult)
async def leave(challenge_id: str, user=Depends(get_current_user), engine: GamificationEngine = Depends(get_engine)):
    return raise_for_result(await engine.challenges.leave_challenge(str(user["_id"]), challenge_id))


@router.post("/{challenge_id}/progress", response_model=ParticipantOut, summary="Recompute your progress now")
async def refresh_progress(
    challenge_id: str,
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    user_id = str(user["_id"])
    await engine.challenges.update_participant(challenge_id, user_id)
    participant = await engine.challenges.get_participant(challenge_id, user_id)
    if not participant:
        raise HTTPException(status_code=404, detail="Not participating in this challenge")
    challenge = await engine.challenges.get_challenge(challenge_id)
    return to_participant_out(participant, challenge)


@router.get("/{challenge_id}/leaderboard", response_model=List[LeaderboardEntry])
async def leaderboard(
    challenge_id: str,
    limit: int = Query(10, ge=1, le=100),
    user=Depends(get_current_user),
    engine: GamificationEngine = Depends(get_engine),
):
    if not await engine.challenges.get_challenge(challenge_id):
        raise HTTPException(status_code=404, detail="Challenge not found")
    return await engine.challenges.get_challenge_leaderboard(challenge_id, limit=limit)
