import logging
import uuid
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pymongo.errors import DuplicateKeyError
import bis_arena.db.database as db
import bis_arena.utils.data_handler as dh
import bis_arena.utils.security as security
import bis_arena.utils.session as session
import bis_arena.utils.timing as timing

logger = logging.getLogger(__name__)


# ==============================
#        Payload Classes
# ==============================
class Login(BaseModel):
    email: Optional[str] = Field(None, description="Email used during registration (case insensitive).")
    password: Optional[str] = Field(None, description="Account password.")

class Register(Login):
    username: Optional[str] = Field(None, description="Display name shown on the leaderboard.")
    age: Optional[int] = Field(None, description="Age of the student.")
    college: Optional[str] = Field(None, description="College the student attends.")

    @field_validator("age", "college", mode="before")
    @classmethod
    def _empty_as_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PublicUser(BaseModel):
    email: str = Field(..., description="Lowercased account email.")
    username: str = Field(..., description="Display name.")
    age: Optional[int] = Field(None, description="Age, if provided.")
    college: Optional[str] = Field(None, description="College, if provided.")
    profilePic: Optional[str] = Field(None, description="Public path of the profile picture.")


class AuthResponse(BaseModel):
    model_config = ConfigDict(extra="allow")
    token: str = Field(..., description="Signed bearer token valid for 24 hours.")
    user: PublicUser


class BearerValidationResponse(BaseModel):
    valid: bool = Field(..., description="Whether the token is valid.")
    userId: str = Field(..., description="Identifier carried by the token.")
    email: str = Field(..., description="Email carried by the token.")


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error detail.")


# ===============================
#        Fast API Router
# ===============================
router = APIRouter(prefix="/api/auth", tags=["Auth"])



# ==============================================
# ================== ROUTES ====================
# ==============================================

# ==========================
#         register
# ==========================
@router.post(
    "/register",
    status_code=201,
    summary="Register a new account",
    description=(
        "Creates a new BIS Arena user.  \n"
        "- Requires username, email and password; age and college are optional.  \n"
        "- Emails are normalized to lowercase and must not be already registered.  \n"
        "- Returns a bearer token for the newly registered user."
    ),
    operation_id="registerUser",
    response_model=AuthResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing fields, unencodable password or email already registered."},
        500: {"model": ErrorResponse, "description": "Database error while creating the user."},
    },
)
def register(payload: Register) -> dict:
    username = (payload.username or "").strip()
    password = payload.password or ""
    raw_email = (payload.email or "").strip()
    # Check that all the fields are in the payload
    if not username or not password or not raw_email:
        raise HTTPException(status_code = 400, detail = "Required fields are missing")
    email = raw_email.lower()
    try:
        existing = db.find_one(table_name = "users", filters = {"email": email}, projection = {"_id": True})
    except RuntimeError as exc:
        logger.error("Registration error: %s", exc)
        raise HTTPException(status_code = 500, detail = "Error registering user")
    if existing:
        raise HTTPException(status_code = 400, detail = "User already exists with this email")
    try:
        password_hash = security.hash_password(password)
    except ValueError:
        raise HTTPException(status_code = 400, detail = "Password contains invalid characters")
    user = {
        "user_id": str(uuid.uuid4()),
        "username": username,
        "email": email,
        "password_hash": password_hash,
        "age": payload.age,
        "college": payload.college,
        "profile_pic": None,
        "points": 0,
        "completed_tasks": [],
        "created_at": timing.now(),
    }
    try:
        db.insert(table_name = "users", record = user)
    except DuplicateKeyError:
        raise HTTPException(status_code = 400, detail = "User already exists with this email")
    except RuntimeError as exc:
        logger.error("Registration error: %s", exc)
        raise HTTPException(status_code = 500, detail = "Error registering user")
    logger.info("Registered user %s", email)
    token = session.generate_session(user["user_id"], email)
    return {"message": "User registered successfully", "token": token, "user": dh.public_user(user)}


# ==========================
#           login
# ==========================
@router.post(
    "/login",
    status_code=200,
    summary="Log in",
    description=(
        "Authenticates an existing user by email and password.  \n"
        "Returns a new bearer token when credentials are correct."
    ),
    operation_id="loginUser",
    response_model=AuthResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Email or password missing, or password not encodable."},
        401: {"model": ErrorResponse, "description": "Invalid password."},
        404: {"model": ErrorResponse, "description": "User not found."},
        500: {"model": ErrorResponse, "description": "Database error during login."},
    },
)
def login(payload: Login) -> dict:
    email = (payload.email or "").strip().lower()
    password = payload.password or ""
    # Check that all the fields are in the payload
    if not email or not password:
        raise HTTPException(status_code = 400, detail = "Email and password are required")
    try:
        user = dh.get_user_by_email(email, projection = {**dh.USER_PUBLIC_PROJECTION, "password_hash": True})
    except RuntimeError as exc:
        logger.error("Login error: %s", exc)
        raise HTTPException(status_code = 500, detail = "Error during login")
    if user is None:
        raise HTTPException(status_code = 404, detail = "User not found")
    try:
        valid_password = security.verify_password(user.get("password_hash", ""), password)
    except ValueError:
        raise HTTPException(status_code = 400, detail = "Password contains invalid characters")
    if not valid_password:
        logger.warning("Failed login for %s", email)
        raise HTTPException(status_code = 401, detail = "Invalid password")
    logger.info("User %s logged in", email)
    return {"token": session.generate_session(user["user_id"], user["email"]), "user": dh.public_user(user)}


# ==========================
#          verify
# ==========================
@router.get(
    "/verify",
    status_code=200,
    summary="Validate bearer token",
    description="Checks the Bearer token of the request and returns the identity it carries.",
    operation_id="checkBearer",
    response_model=BearerValidationResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Token not provided."},
        403: {"model": ErrorResponse, "description": "Invalid or expired token."},
    },
)
def validate_bearer(identity: dict = Depends(session.require_bearer)) -> dict:
    return {"valid": True, "userId": identity["user_id"], "email": identity["email"]}
