import json
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Optional
import jwt
from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import bis_arena.utils.timing as timing

load_dotenv()

logger = logging.getLogger(__name__)


# ==============================
#         Load Variables
# ==============================
_CONFIG_PATH = Path(__file__).resolve().parents[0] / "env.json"
with _CONFIG_PATH.open("r", encoding="utf-8") as f:
    _cfg = json.load(f)

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "bis-arena-development-secret-key-change-me")
ALGORITHM = _cfg.get("AUTH_TOKEN_ALGORITHM", "HS256")
TOKEN_EXPIRE_HOURS = int(_cfg.get("AUTH_TOKEN_EXPIRE_HOURS", 24))

bearer_scheme = HTTPBearer(auto_error=False)


def generate_session(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    issued_at = timing.now()
    payload = {
        "userId": user_id,
        "email": email,
        "iat": issued_at,
        "exp": issued_at + (expires_delta or timedelta(hours=TOKEN_EXPIRE_HOURS)),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def verify_session(token: str) -> tuple[bool, dict]:
    '''
    Decode and verify a bearer token.

    Parameters
    ----------
    - token (str): the raw JWT, without the "Bearer " prefix.

    Returns
    -------
    (True, {"user_id": str, "email": str}) when the signature, expiry and claims are valid,
    (False, {}) otherwise.
    '''
    if not token:
        return (False, {})
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM], options={"require": ["exp", "iat"]})
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        return (False, {})
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected invalid token: %s", exc)
        return (False, {})
    user_id = payload.get("userId")
    email = payload.get("email")
    if not user_id or not email:
        return (False, {})
    return (True, {"user_id": user_id, "email": email})


def require_bearer(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code = 401, detail = "Authentication token required")
    ok, identity = verify_session(credentials.credentials)
    if not ok:
        raise HTTPException(status_code = 403, detail = "Invalid or expired token")
    request.state.user = identity
    return identity
