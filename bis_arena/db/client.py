import logging
import os
from typing import Optional
from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

load_dotenv()

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
_db: Optional[Database] = None
MONGO_DB = MONGO_URI = None

def config_by_env(reset: bool = False) -> None:
    global _client, _db, MONGO_DB, MONGO_URI
    # Case of reset of the DB connection
    if reset:
        close_client()
    if (
        not reset
        and _client is not None
        and _db is not None
        and None not in [MONGO_DB, MONGO_URI]
    ):
        return
    # Initializations of global variables
    MONGO_DB = os.getenv("MONGO_DB", "bisDashboard")
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    # Create a new client and database
    if _client is None:
        try:
            _client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=3000)
            _client.admin.command("ping")
        except PyMongoError as exc:
            logger.warning("MongoDB not reachable at %s: %s", MONGO_URI, exc)
            _client = _db = None
            return
    if _db is None:
        _db = _client[MONGO_DB]

def connect(reset: bool = False) -> None:
    config_by_env(reset=reset)
    if _db is not None:
        logger.info("Connected to MongoDB database '%s'", MONGO_DB)

def get_db() -> Optional[Database]:
    config_by_env()
    return _db

def close_client() -> None:
    global _client, _db
    if _client:
        _client.close()
    _client = None
    _db = None

async def close() -> None:
    close_client()

def ping() -> bool:
    config_by_env()
    if _client is None:
        return False
    try:
        _client.admin.command("ping")
        return True
    except PyMongoError:
        return False
