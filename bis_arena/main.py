import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

import bis_arena.db.client as client
import bis_arena.utils.uploads as uploads
from bis_arena.db.database import create_indexes
from bis_arena.services.authentication.server import router as authentication_router
from bis_arena.services.gamification.server import router as gamification_router
from bis_arena.services.learning.server import router as learning_router
from bis_arena.services.profile.server import router as profile_router
from bis_arena.services.tasks.server import router as tasks_router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent / "utils" / "env.json"
with CONFIG_PATH.open("r", encoding="utf-8") as f:
    _cfg = json.load(f)

CORS_ORIGIN = os.getenv("CORS_ORIGIN", _cfg.get("CORS_ORIGIN", "http://localhost:5173"))


@asynccontextmanager
async def lifespan(_: FastAPI):
    uploads.ensure_upload_dirs()
    client.connect()
    db = client.get_db()
    if db is None:
        logger.warning("MongoDB connection not available; API will run without database.")
    else:
        create_indexes(db)
    try:
        yield
    finally:
        await client.close()

app = FastAPI(title = _cfg.get("APP_TITLE", "BIS Arena"), lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[CORS_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(authentication_router)
app.include_router(profile_router)
app.include_router(tasks_router)
app.include_router(gamification_router)
app.include_router(learning_router)


# -----------------------
# Uploaded files
# -----------------------
@app.get(uploads.UPLOADS_URL_PREFIX + "/{file_path:path}", include_in_schema=False)
def serve_upload(file_path: str):
    full_path = uploads.resolve_public_path(file_path)
    if full_path is None or not full_path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(full_path)


# -----------------------
# Custom exception handlers
# -----------------------
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Invalid request on %s: %s", request.url.path, exc.errors())
    return JSONResponse({
        "detail": "Required fields are missing",
        "errors": jsonable_encoder(exc.errors()),
    }, status_code=400)

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s: %s", request.url.path, str(exc), exc_info=True)
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", _cfg.get("APP_PORT", 5000)))
    reload = os.getenv("RELOAD", "false").lower() in {"1", "true", "yes"}

    uvicorn.run("bis_arena.main:app", host=host, port=port, reload=reload)
