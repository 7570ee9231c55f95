"""
MongoDB connection and document helpers

`db` is None when DATABASE_URL / DATABASE_NAME are not configured; callers
check for that before touching collections.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import get_database_name, get_database_url

logger = logging.getLogger(__name__)

FEEDBACK_COLLECTION = "feedback"
CUSTOMER_COLLECTION = "customercard"

client: Optional[MongoClient] = None
db: Optional[Database] = None

_url = get_database_url()
_name = get_database_name()
if _url and _name:
    client = MongoClient(_url, tz_aware=True)
    db = client[_name]
else:
    logger.warning("DATABASE_URL or DATABASE_NAME not set - database disabled")


def create_document(collection_name: str, data, database: Optional[Database] = None) -> str:
    """Insert a pydantic model (or dict) and return the new id as string."""
    target = database if database is not None else db
    if target is None:
        raise RuntimeError("Database not configured")

    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = target[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    database: Optional[Database] = None,
) -> List[dict]:
    target = database if database is not None else db
    if target is None:
        raise RuntimeError("Database not configured")

    cursor = target[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    """Unique phone number per customer card and per feedback ledger."""
    database[FEEDBACK_COLLECTION].create_index([("phoneNumber", ASCENDING)], unique=True)
    database[FEEDBACK_COLLECTION].create_index([("visits.dateKey", ASCENDING)])
    database[FEEDBACK_COLLECTION].create_index([("lastVisitAt", ASCENDING)])
    database[CUSTOMER_COLLECTION].create_index([("phoneNumber", ASCENDING)], unique=True)
