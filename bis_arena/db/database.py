from typing import Optional
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from bis_arena.db import client, utility

def _ensure_index(collection: Collection, keys: list[tuple[str, int]], **kwargs) -> None:
    existing = collection.index_information()
    for info in existing.values():
        if info.get("key") == keys:
            return
    collection.create_index(keys, **kwargs)

def connect_to_db() -> Database:
    if not client.ping():
        client.connect()
    db = client.get_db()
    if db is None:
        raise RuntimeError("MongoDB connection not available")
    return db

def insert(table_name: str, record: dict):
    db = connect_to_db()
    if not utility.check_primary_keys(table_name, record):
        raise RuntimeError(f"The primary keys {utility.table_primary_keys_dict[table_name]} of '{table_name}' are required in the record field")
    try:
        return db[table_name].insert_one(record)
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        raise RuntimeError(e) from e

def find_one(table_name: str, filters: Optional[dict] = None, projection: Optional[dict] = None) -> Optional[dict]:
    db = connect_to_db()
    try:
        return db[table_name].find_one(filter = filters or {}, projection = projection)
    except PyMongoError as e:
        raise RuntimeError(e) from e

def find_many(
    table_name: str,
    filters: Optional[dict] = None,
    projection: Optional[dict] = None,
    sort: Optional[list[tuple[str, int]]] = None,
    limit: int = 0,
) -> list[dict]:
    db = connect_to_db()
    try:
        cursor = db[table_name].find(filter = filters or {}, projection = projection)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)
    except PyMongoError as e:
        raise RuntimeError(e) from e

def find_one_and_update(
    table_name: str,
    keys_dict: dict,
    values_dict: dict,
    projection: Optional[dict] = None,
    return_policy: ReturnDocument = ReturnDocument.AFTER,
) -> Optional[dict]:
    db = connect_to_db()
    if not utility.check_primary_keys(table_name, keys_dict):
        raise RuntimeError(f"The primary keys {utility.table_primary_keys_dict[table_name]} of '{table_name}' are required in the record field")
    try:
        return db[table_name].find_one_and_update(filter = keys_dict, update = values_dict, projection = projection, return_document = return_policy)
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        raise RuntimeError(e) from e

def create_indexes(db: Optional[Database]) -> None:
    if db is None:
        return
    users = db["users"]
    _ensure_index(users, [("user_id", ASCENDING)], unique=True, name="users_index1")
    _ensure_index(users, [("email", ASCENDING)], unique=True, name="users_index2")
    _ensure_index(users, [("points", DESCENDING), ("username", ASCENDING)], name="users_leaderboard_index")
