from typing import Optional
from fastapi import HTTPException
import bis_arena.db.database as db

USER_PUBLIC_PROJECTION = {
    "_id": False,
    "user_id": True,
    "email": True,
    "username": True,
    "age": True,
    "college": True,
    "profile_pic": True,
}


def public_user(user: dict) -> dict:
    '''
    Convert a stored user document to the fields exposed by the API.

    Parameters
    ----------
    - user (dict): document of the users collection (snake_case keys).

    Returns
    -------
    - dict: the public profile in the following format:

        {
            "email": str,
            "username": str,
            "age": int | None,
            "college": str | None,
            "profilePic": str | None
        }
    '''
    return {
        "email": user.get("email"),
        "username": user.get("username"),
        "age": user.get("age"),
        "college": user.get("college"),
        "profilePic": user.get("profile_pic"),
    }


def get_user_by_email(email: str, projection: Optional[dict] = None) -> Optional[dict]:
    return db.find_one(
        table_name="users",
        filters={"email": email.strip().lower()},
        projection=projection or USER_PUBLIC_PROJECTION,
    )


def get_user_or_404(user_id: str, projection: Optional[dict] = None) -> dict:
    user = db.find_one(
        table_name="users",
        filters={"user_id": user_id},
        projection=projection or USER_PUBLIC_PROJECTION,
    )
    if user is None:
        raise HTTPException(status_code = 404, detail = "User not found")
    return user
