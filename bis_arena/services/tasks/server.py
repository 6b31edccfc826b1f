import json
import logging
from pathlib import Path
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo import ReturnDocument
import bis_arena.db.database as db
import bis_arena.utils.data_handler as dh
import bis_arena.utils.session as session
from bis_arena.services.gamification import server as gamification_server

logger = logging.getLogger(__name__)


# ==============================
#         Load Variables
# ==============================
CONFIG_PATH = Path(__file__).resolve().parents[2] / "utils" / "env.json"
with CONFIG_PATH.open("r", encoding="utf-8") as f:
    _cfg = json.load(f)

TASKS_DAILY_MISSIONS = _cfg.get("TASKS_DAILY_MISSIONS", [])


# ==============================
#        Payload Classes
# ==============================
class Task(BaseModel):
    taskId: str = Field(..., description="Identifier of the completed mission.")
    taskTitle: Optional[str] = Field(None, description="Human readable title of the mission.")
    points: int = Field(..., description="Points awarded by the mission, as reported by the client.")


class CompleteTaskResponse(BaseModel):
    message: str = Field(..., description="Outcome message.")
    points: int = Field(..., description="New point total of the user.")
    leaderboard: list[gamification_server.LeaderboardEntry]


class Mission(BaseModel):
    id: str = Field(..., description="Mission identifier, used as taskId on completion.")
    title: str = Field(..., description="Mission title.")
    points: int = Field(..., description="Points shown for the mission.")
    completed: bool = Field(..., description="Whether the caller already completed it.")


class MissionsResponse(BaseModel):
    missions: list[Mission]
    points: int = Field(..., description="Current point total of the caller.")


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error detail.")


# ===============================
#        Fast API Router
# ===============================
router = APIRouter(prefix="/api/tasks", tags=["Tasks"])



# ==============================================
# ================== ROUTES ====================
# ==============================================

# ==========================
#         complete
# ==========================
@router.post(
    "/complete",
    status_code=200,
    summary="Mark task as done",
    description=(
        "Marks a task as completed for the authenticated user and adds its points.  \n"
        "- The task id is added and the points incremented in a single conditional update,  \n"
        "  so a task already present in the user's completed list is never awarded twice.  \n"
        "- Returns the new point total and the recomputed leaderboard."
    ),
    operation_id="completeTask",
    response_model=CompleteTaskResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Task already completed or task id missing."},
        401: {"model": ErrorResponse, "description": "Token not provided."},
        403: {"model": ErrorResponse, "description": "Invalid or expired token."},
        404: {"model": ErrorResponse, "description": "User not found."},
        500: {"model": ErrorResponse, "description": "Database error while completing the task."},
    },
)
def complete_task(payload: Task, identity: dict = Depends(session.require_bearer)) -> dict:
    user_id = identity["user_id"]
    task_id = payload.taskId.strip()
    if not task_id:
        raise HTTPException(status_code = 400, detail = "Required fields are missing")

    try:
        # 1. Award the task only if it is not already in the completed list
        user = db.find_one_and_update(
            table_name="users",
            keys_dict={"user_id": user_id, "completed_tasks": {"$ne": task_id}},
            values_dict={"$inc": {"points": payload.points}, "$push": {"completed_tasks": task_id}},
            projection={"_id": False, "username": True, "points": True},
            return_policy=ReturnDocument.AFTER,
        )
        if user is None:
            # 2. Nothing matched: either the user is gone or the task was already done
            dh.get_user_or_404(user_id, projection={"_id": True})
            raise HTTPException(status_code = 400, detail = "Task already completed")
        # 3. Updated leaderboard
        leaderboard = gamification_server.compute_leaderboard()
    except RuntimeError as exc:
        logger.error("Error completing task %s for user %s: %s", task_id, user_id, exc)
        raise HTTPException(status_code = 500, detail = "Error completing task")

    logger.info("User %s completed task %s (%r) for %d points", user["username"], task_id, payload.taskTitle, payload.points)
    return {"message": "Task completed successfully", "points": user["points"], "leaderboard": leaderboard}


# ==========================
#         missions
# ==========================
@router.get(
    "/missions",
    status_code=200,
    summary="Daily missions",
    description="Lists the daily missions with the completion state of the authenticated user.",
    operation_id="listMissions",
    response_model=MissionsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Token not provided."},
        403: {"model": ErrorResponse, "description": "Invalid or expired token."},
        404: {"model": ErrorResponse, "description": "User not found."},
        500: {"model": ErrorResponse, "description": "Database error while reading the user."},
    },
)
def list_missions(identity: dict = Depends(session.require_bearer)) -> dict:
    try:
        user = dh.get_user_or_404(identity["user_id"], projection={"_id": False, "completed_tasks": True, "points": True})
    except RuntimeError as exc:
        logger.error("Error fetching missions for user %s: %s", identity["user_id"], exc)
        raise HTTPException(status_code = 500, detail = "Error fetching missions")
    completed = set(user.get("completed_tasks") or [])
    missions = [
        {"id": m["id"], "title": m["title"], "points": int(m["points"]), "completed": m["id"] in completed}
        for m in TASKS_DAILY_MISSIONS
    ]
    return {"missions": missions, "points": int(user.get("points") or 0)}
