"""
MongoDB access

Collections are addressed by the lowercase name of their schema
("product", "order", "user", ...). All documents get created_at and
updated_at stamps. Ids are returned as strings.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import MongoClient, ReturnDocument

from config import DATABASE_NAME, DATABASE_URL

logger = structlog.get_logger(__name__)


class DatabaseUnavailable(RuntimeError):
    pass


client = MongoClient(DATABASE_URL) if DATABASE_URL and DATABASE_NAME else None
db = client[DATABASE_NAME] if client is not None else None


def _collection(collection_name: str):
    if db is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    return db[collection_name]


def _object_id(document_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(document_id)
    except (InvalidId, TypeError):
        return None


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Replace Mongo's _id with a string id."""
    if doc is None:
        return None
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(collection_name: str, data: Any) -> str:
    data_copy = data.model_dump() if hasattr(data, "model_dump") else dict(data)
    now = datetime.now(timezone.utc)
    data_copy["created_at"] = now
    data_copy["updated_at"] = now

    result = _collection(collection_name).insert_one(data_copy)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[tuple]] = None,
) -> List[Dict[str, Any]]:
    cursor = _collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [serialize(d) for d in cursor]


def get_document(collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
    oid = _object_id(document_id)
    if oid is None:
        return None
    return serialize(_collection(collection_name).find_one({"_id": oid}))


def get_documents_by_ids(collection_name: str, document_ids: List[str]) -> List[Dict[str, Any]]:
    """Documents in the order of document_ids; missing ones are skipped."""
    oids = [oid for oid in (_object_id(i) for i in document_ids) if oid is not None]
    found = {str(d["_id"]): serialize(d) for d in _collection(collection_name).find({"_id": {"$in": oids}})}
    return [found[i] for i in document_ids if i in found]


def find_document(collection_name: str, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return serialize(_collection(collection_name).find_one(filter_dict))


def update_document(collection_name: str, document_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    oid = _object_id(document_id)
    if oid is None:
        return None
    updates = {k: v for k, v in updates.items() if k not in ("id", "_id")}
    updates["updated_at"] = datetime.now(timezone.utc)
    doc = _collection(collection_name).find_one_and_update(
        {"_id": oid},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return serialize(doc)


def delete_document(collection_name: str, document_id: str) -> bool:
    oid = _object_id(document_id)
    if oid is None:
        return False
    result = _collection(collection_name).delete_one({"_id": oid})
    return result.deleted_count > 0


def replace_singleton(collection_name: str, data: Dict[str, Any]) -> None:
    """Keep exactly one document in a config-style collection."""
    coll = _collection(collection_name)
    now = datetime.now(timezone.utc)
    coll.delete_many({})
    coll.insert_one({**data, "updated_at": now})
    logger.info("singleton_replaced", collection=collection_name)


def get_singleton(collection_name: str) -> Optional[Dict[str, Any]]:
    return serialize(_collection(collection_name).find_one({}))
