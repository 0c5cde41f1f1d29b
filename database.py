"""
Database Helpers

MongoDB access for the LazyLotto service. `db` is None when DATABASE_URL or
DATABASE_NAME is not set; helpers then raise instead of silently dropping
writes.
"""

import os
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def _require_db():
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def _as_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with created_at / updated_at stamps and return its id."""
    database = _require_db()
    doc = _as_dict(data)
    doc["created_at"] = datetime.now(timezone.utc)
    doc["updated_at"] = datetime.now(timezone.utc)
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> list:
    database = _require_db()
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    docs = list(cursor)
    for d in docs:
        d["_id"] = str(d["_id"])
    return docs


def upsert_document(collection_name: str, key: dict, data: Union[BaseModel, dict]) -> None:
    database = _require_db()
    doc = _as_dict(data)
    doc["updated_at"] = datetime.now(timezone.utc)
    database[collection_name].update_one(
        key,
        {"$set": doc, "$setOnInsert": {"created_at": datetime.now(timezone.utc)}},
        upsert=True,
    )
