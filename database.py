"""
Database helpers

MongoDB connection and the small document helpers shared by every module.
Connection settings come from the environment (a local ``.env`` is loaded
first):

- DATABASE_URL: MongoDB connection string
- DATABASE_NAME: database to use

When either is missing ``db`` stays ``None`` and every request that needs the
database fails with an internal error.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from errors import Internal, NotFound

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]
    logger.info("Using MongoDB database %s", DATABASE_NAME)
else:
    logger.warning("DATABASE_URL / DATABASE_NAME not set, database disabled")


def get_db() -> Database:
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise Internal("Database not configured")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document with timestamps and return its id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_str_id(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def parse_object_id(value: Any, error: NotFound) -> ObjectId:
    # A malformed id cannot name an existing document.
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise error


def ensure_indexes(database: Database) -> None:
    database["product"].create_index([("category", ASCENDING)])
    database["product"].create_index([("price", ASCENDING)])
    database["cart"].create_index(
        [("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True
    )
    database["order"].create_index([("user_id", ASCENDING), ("order_date", DESCENDING)])
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["session"].create_index([("token", ASCENDING)], unique=True)
    logger.debug("Indexes ensured on %s", database.name)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """MongoDB hands back naive datetimes; they are UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
