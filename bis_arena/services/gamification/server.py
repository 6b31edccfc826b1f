import json
import logging
from pathlib import Path
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING
import bis_arena.db.database as db
import bis_arena.utils.session as session

logger = logging.getLogger(__name__)


# ==============================
#         Load Variables
# ==============================
CONFIG_PATH = Path(__file__).resolve().parents[2] / "utils" / "env.json"
with CONFIG_PATH.open("r", encoding="utf-8") as f:
    _cfg = json.load(f)

LEADERBOARD_K = int(_cfg.get("LEADERBOARD_K", 10))


# ==============================
#        Payload Classes
# ==============================
class LeaderboardEntry(BaseModel):
    username: str = Field(..., description="Display name of the user.")
    points: int = Field(..., description="Total points earned.")
    rank: int = Field(..., description="1-based position in the leaderboard.")


class LeaderboardResponse(BaseModel):
    leaderboard: list[LeaderboardEntry]


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error detail.")


def compute_leaderboard(limit: int = LEADERBOARD_K) -> list[dict]:
    '''
    Rank users by points, recomputed from the users collection on every call.

    Ties are ordered by username so that the ranking is deterministic.
    '''
    limit = max(1, min(int(limit), LEADERBOARD_K))
    users = db.find_many(
        table_name = "users",
        projection = {"_id": False, "username": True, "points": True},
        sort = [("points", DESCENDING), ("username", ASCENDING)],
        limit = limit,
    )
    return [
        {"username": user.get("username"), "points": int(user.get("points") or 0), "rank": idx + 1}
        for idx, user in enumerate(users)
    ]


# ===============================
#        Fast API Router
# ===============================
router = APIRouter(prefix="/api", tags=["Gamification"])



# ==============================================
# ================== ROUTES ====================
# ==============================================

# ==========================
#        leaderboard
# ==========================
@router.get(
    "/leaderboard",
    status_code = 200,
    summary="Top users by points",
    description=(
        "Returns the top users sorted by points (descending), at most 10 entries.  \n"
        "Rank is the 1-based position in the sorted list."
    ),
    operation_id="getLeaderboard",
    response_model=LeaderboardResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Token not provided."},
        403: {"model": ErrorResponse, "description": "Invalid or expired token."},
        500: {"model": ErrorResponse, "description": "Database error while fetching the leaderboard."},
    },
)
def get_leaderboard(
    limit: int = Query(LEADERBOARD_K, ge=1, le=LEADERBOARD_K, description="Number of entries to return."),
    _: dict = Depends(session.require_bearer),
) -> dict:
    try:
        items = compute_leaderboard(limit)
    except RuntimeError as exc:
        logger.error("Error fetching leaderboard: %s", exc)
        raise HTTPException(status_code = 500, detail = "Error fetching leaderboard")
    return {"leaderboard": items}
