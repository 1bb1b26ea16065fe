"""
MongoDB connection and document helpers.

The client is created once at import time from DATABASE_URL / DATABASE_NAME.
When either is missing, `db` stays None and the API reports the database as
disconnected instead of failing to start.
"""
import os
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from dotenv import load_dotenv
from pymongo import MongoClient

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db = None
if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db():
    if db is None:
        raise RuntimeError("Database is not configured. Set DATABASE_URL and DATABASE_NAME.")
    return db


def create_document(collection_name: str, data: dict, database=None) -> str:
    """Insert a document stamped with created_at/updated_at and return its id.

    Writes to `database` when given, otherwise to the configured default.
    """
    data = dict(data)
    now = datetime.utcnow()
    data.setdefault("created_at", now)
    data.setdefault("updated_at", now)
    target = database if database is not None else get_db()
    result = target[collection_name].insert_one(data)
    return str(result.inserted_id)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse a 24-char hex id. Returns None for anything else."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize_document(value: Any) -> Any:
    """Make a document JSON friendly: ObjectIds become strings and `id` mirrors `_id`."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [serialize_document(v) for v in value]
    if isinstance(value, dict):
        out = {k: serialize_document(v) for k, v in value.items()}
        if "_id" in out:
            out["id"] = out["_id"]
        return out
    return value
