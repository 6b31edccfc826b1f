import logging
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError
import bis_arena.db.database as db
import bis_arena.utils.data_handler as dh
import bis_arena.utils.security as security
import bis_arena.utils.session as session
import bis_arena.utils.uploads as uploads
from bis_arena.services.authentication.server import PublicUser

logger = logging.getLogger(__name__)


# ==============================
#        Payload Classes
# ==============================
class UserResponse(BaseModel):
    user: PublicUser


class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Error detail.")


def _parse_age(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise HTTPException(status_code = 400, detail = "Age must be an integer")


# ===============================
#        Fast API Router
# ===============================
router = APIRouter(prefix="/api/user", tags=["Profile"])



# ==============================================
# ================== ROUTES ====================
# ==============================================

# ==========================
#        get profile
# ==========================
@router.get(
    "/profile/{email}",
    status_code = 200,
    summary="Get a user profile",
    description="Returns the public profile of the user registered with the given email.",
    operation_id="getUserProfile",
    response_model=UserResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Token not provided."},
        403: {"model": ErrorResponse, "description": "Invalid or expired token."},
        404: {"model": ErrorResponse, "description": "User not found."},
        500: {"model": ErrorResponse, "description": "Database error while fetching the profile."},
    },
)
def get_profile(email: str, _: dict = Depends(session.require_bearer)) -> dict:
    try:
        user = dh.get_user_by_email(email)
    except RuntimeError as exc:
        logger.error("Error fetching user profile %s: %s", email, exc)
        raise HTTPException(status_code = 500, detail = "Error fetching user profile")
    if user is None:
        raise HTTPException(status_code = 404, detail = "User not found")
    return {"user": dh.public_user(user)}


# ==========================
#       update profile
# ==========================
@router.put(
    "/profile/{email}",
    status_code = 200,
    summary="Update a user profile",
    description=(
        "Updates the fields present in the multipart form, leaving the others untouched.  \n"
        "- A password change requires both `currentPassword` and `newPassword`; a wrong current password aborts the whole update.  \n"
        "- A new `profilePic` (png/jpeg, max 5MB) replaces the previous picture, which is deleted."
    ),
    operation_id="updateUserProfile",
    response_model=UserResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid age, email already in use or unsupported image."},
        401: {"model": ErrorResponse, "description": "Token not provided or current password incorrect."},
        403: {"model": ErrorResponse, "description": "Invalid or expired token."},
        404: {"model": ErrorResponse, "description": "User not found."},
        413: {"model": ErrorResponse, "description": "Image too large."},
        500: {"model": ErrorResponse, "description": "Database error while updating the profile."},
    },
)
def update_profile(
    email: str,
    username: Optional[str] = Form(None),
    new_email: Optional[str] = Form(None, alias="email"),
    age: Optional[str] = Form(None),
    college: Optional[str] = Form(None),
    currentPassword: Optional[str] = Form(None),
    newPassword: Optional[str] = Form(None),
    profilePic: Optional[UploadFile] = File(None),
    _: dict = Depends(session.require_bearer),
) -> dict:
    try:
        user = dh.get_user_by_email(email, projection = {**dh.USER_PUBLIC_PROJECTION, "password_hash": True})
    except RuntimeError as exc:
        logger.error("Error updating profile %s: %s", email, exc)
        raise HTTPException(status_code = 500, detail = "Error updating profile")
    if user is None:
        raise HTTPException(status_code = 404, detail = "User not found")

    # 1. Collect the fields present in the form
    updates: dict = {}
    if username and username.strip():
        updates["username"] = username.strip()
    if age is not None and age.strip():
        updates["age"] = _parse_age(age)
    if college and college.strip():
        updates["college"] = college.strip()
    if new_email and new_email.strip():
        normalized = new_email.strip().lower()
        if normalized != user["email"]:
            try:
                taken = dh.get_user_by_email(normalized, projection = {"_id": True})
            except RuntimeError as exc:
                logger.error("Error updating profile %s: %s", email, exc)
                raise HTTPException(status_code = 500, detail = "Error updating profile")
            if taken:
                raise HTTPException(status_code = 400, detail = "Email already in use")
        updates["email"] = normalized

    # 2. Password change, verified before anything is written
    if currentPassword and newPassword:
        try:
            valid_password = security.verify_password(user.get("password_hash", ""), currentPassword)
        except ValueError:
            raise HTTPException(status_code = 400, detail = "Password contains invalid characters")
        if not valid_password:
            logger.warning("Rejected password change for %s: wrong current password", user["email"])
            raise HTTPException(status_code = 401, detail = "Current password is incorrect")
        try:
            updates["password_hash"] = security.hash_password(newPassword)
        except ValueError:
            raise HTTPException(status_code = 400, detail = "Password contains invalid characters")

    # 3. New picture: validated in memory, written only once the request is known to be valid
    old_picture = user.get("profile_pic")
    new_picture = None
    if profilePic is not None and profilePic.filename:
        extension, content = uploads.read_profile_picture(profilePic)
        new_picture = uploads.save_profile_picture(extension, content)
        updates["profile_pic"] = new_picture

    if not updates:
        return {"user": dh.public_user(user)}

    try:
        updated = db.find_one_and_update(
            table_name = "users",
            keys_dict = {"user_id": user["user_id"]},
            values_dict = {"$set": updates},
            projection = dh.USER_PUBLIC_PROJECTION,
            return_policy = ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        uploads.delete_profile_picture(new_picture)
        raise HTTPException(status_code = 400, detail = "Email already in use")
    except RuntimeError as exc:
        uploads.delete_profile_picture(new_picture)
        logger.error("Error updating profile %s: %s", email, exc)
        raise HTTPException(status_code = 500, detail = "Error updating profile")
    if updated is None:
        uploads.delete_profile_picture(new_picture)
        raise HTTPException(status_code = 404, detail = "User not found")

    # 4. The old picture goes away only after the new path is stored
    if new_picture and old_picture and old_picture != new_picture:
        uploads.delete_profile_picture(old_picture)
    if new_picture:
        logger.info("Profile picture of %s set to %s", updated["email"], new_picture)
    return {"user": dh.public_user(updated)}
