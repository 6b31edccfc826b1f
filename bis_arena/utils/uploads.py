import json
import logging
import os
import secrets
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv
from fastapi import HTTPException, UploadFile
import bis_arena.utils.timing as timing

load_dotenv()

logger = logging.getLogger(__name__)


# ==============================
#         Load Variables
# ==============================
_CONFIG_PATH = Path(__file__).resolve().parents[0] / "env.json"
with _CONFIG_PATH.open("r", encoding="utf-8") as f:
    _cfg = json.load(f)

UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", Path(__file__).resolve().parents[2] / "uploads"))
UPLOADS_URL_PREFIX = _cfg.get("UPLOADS_URL_PREFIX", "/uploads")
UPLOADS_PROFILES_DIR = _cfg.get("UPLOADS_PROFILES_DIR", "profiles")
UPLOADS_MAX_SIZE_BYTES = int(_cfg.get("UPLOADS_MAX_SIZE_BYTES", 5 * 1024 * 1024))
UPLOADS_ALLOWED_EXTENSIONS = {ext.lower() for ext in _cfg.get("UPLOADS_ALLOWED_EXTENSIONS", [])}
UPLOADS_ALLOWED_MIME_TYPES = {mime.lower() for mime in _cfg.get("UPLOADS_ALLOWED_MIME_TYPES", [])}

CHUNK_SIZE = 64 * 1024


def ensure_upload_dirs() -> None:
    (UPLOAD_DIR / UPLOADS_PROFILES_DIR).mkdir(parents=True, exist_ok=True)


def allowed_file(filename: Optional[str], content_type: Optional[str]) -> bool:
    """Both the extension and the declared MIME type must be an accepted image type."""
    if not filename:
        return False
    extension = os.path.splitext(filename)[1].lower()
    mime = (content_type or "").split(";")[0].strip().lower()
    return extension in UPLOADS_ALLOWED_EXTENSIONS and mime in UPLOADS_ALLOWED_MIME_TYPES


def _read_limited(file: UploadFile) -> bytes:
    data = bytearray()
    while True:
        chunk = file.file.read(CHUNK_SIZE)
        if not chunk:
            break
        data.extend(chunk)
        if len(data) > UPLOADS_MAX_SIZE_BYTES:
            raise HTTPException(status_code = 413, detail = "File too large")
    return bytes(data)


def read_profile_picture(file: UploadFile) -> tuple[str, bytes]:
    '''
    Validate an uploaded profile picture without touching the disk.

    Returns
    -------
    (extension, content) of the accepted image.

    Raises
    ------
    HTTPException 400 for a wrong extension or MIME type, 413 when the file exceeds the size limit.
    '''
    if not allowed_file(file.filename, file.content_type):
        logger.warning("Rejected upload %r with content type %r", file.filename, file.content_type)
        raise HTTPException(status_code = 400, detail = "Only .png, .jpg and .jpeg format allowed!")
    content = _read_limited(file)
    return os.path.splitext(file.filename)[1].lower(), content


def save_profile_picture(extension: str, content: bytes) -> str:
    """Write an already validated picture and return its public path."""
    ensure_upload_dirs()
    filename = f"{timing.now_millis()}-{secrets.randbelow(10**9)}{extension}"
    target = UPLOAD_DIR / UPLOADS_PROFILES_DIR / filename
    with target.open("wb") as out:
        out.write(content)
    return f"{UPLOADS_URL_PREFIX}/{UPLOADS_PROFILES_DIR}/{filename}"


def resolve_public_path(public_path: str) -> Optional[Path]:
    """Map a public /uploads/... path to a file inside UPLOAD_DIR, None if it escapes it."""
    prefix = UPLOADS_URL_PREFIX.rstrip("/") + "/"
    relative = public_path[len(prefix):] if public_path.startswith(prefix) else public_path.lstrip("/")
    root = UPLOAD_DIR.resolve()
    candidate = (root / relative).resolve()
    if candidate == root or root not in candidate.parents:
        return None
    return candidate


def delete_profile_picture(public_path: Optional[str]) -> bool:
    if not public_path:
        return False
    path = resolve_public_path(public_path)
    if path is None or not path.is_file():
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.info("Deleted previous profile picture %s", public_path)
    return True
