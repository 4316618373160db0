"""
MongoDB access helpers

Thin pass-through to the remote record store. `db` is None when no
DATABASE_URL is configured; callers treat that as "remote unavailable".
"""

from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.database import Database

from backend.config import settings


def connect(url: Optional[str], name: str) -> Optional[Database]:
    if not url:
        return None
    # Fail fast so requests fall back to the local store instead of hanging
    client = MongoClient(url, serverSelectionTimeoutMS=2000, tz_aware=True)
    return client[name]


db = connect(settings.database_url, settings.database_name)


def _strip_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc.pop("_id", None)
    return doc


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  database: Optional[Database] = None) -> List[Dict[str, Any]]:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not configured")
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return [_strip_id(d) for d in cursor]


def upsert_document(collection_name: str, data: Dict[str, Any], conflict_key: str = "id",
                    database: Optional[Database] = None) -> None:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not configured")
    payload = _strip_id(dict(data))
    database[collection_name].replace_one({conflict_key: payload[conflict_key]}, payload, upsert=True)


def delete_document(collection_name: str, value: Any, key: str = "id",
                    database: Optional[Database] = None) -> int:
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not configured")
    return database[collection_name].delete_one({key: value}).deleted_count
