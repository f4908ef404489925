"""
MongoDB access layer.

Collections are named after the lowercased schema class (User -> "user").
Route handlers go through the helpers below rather than touching ``db``
directly, so the handle can be swapped (tests use mongomock).
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from config import settings
from pipeline import Count, Limit, Skip, render
from responses import ValidationError

logger = logging.getLogger(__name__)

MAX_BSON_INT = 2 ** 63 - 1

client = MongoClient(settings.DATABASE_URL, serverSelectionTimeoutMS=5000)
db = client[settings.DATABASE_NAME]


def objid(id_str, label: str = "id") -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label}")


def ensure_indexes() -> None:
    db["user"].create_index("username", unique=True)
    db["user"].create_index("email", unique=True)
    db["video"].create_index([("owner", ASCENDING), ("created_at", DESCENDING)])
    db["comment"].create_index([("video", ASCENDING), ("created_at", DESCENDING)])
    db["tweet"].create_index([("owner", ASCENDING), ("created_at", DESCENDING)])
    db["like"].create_index(
        [("liked_by", ASCENDING), ("target_kind", ASCENDING), ("target_id", ASCENDING)],
        unique=True,
    )
    db["subscription"].create_index([("subscriber", ASCENDING), ("channel", ASCENDING)], unique=True)


# -------------------- CRUD --------------------

def create_document(collection_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    now = datetime.utcnow()
    doc = {**data, "created_at": now, "updated_at": now}
    inserted_id = db[collection_name].insert_one(doc).inserted_id
    doc["_id"] = inserted_id
    return doc


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[Sequence] = None,
    limit: Optional[int] = None,
    projection: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_by_id(collection_name: str, _id, projection: Optional[Dict[str, Any]] = None):
    return db[collection_name].find_one({"_id": objid(_id)}, projection)


def find_one(collection_name: str, filter_dict: Dict[str, Any], projection: Optional[Dict[str, Any]] = None):
    return db[collection_name].find_one(filter_dict, projection)


def update_by_id(collection_name: str, _id, patch: Dict[str, Any]):
    """$set ``patch`` and return the updated document, or None when absent."""
    return db[collection_name].find_one_and_update(
        {"_id": objid(_id)},
        {"$set": {**patch, "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


def delete_by_id(collection_name: str, _id):
    return db[collection_name].find_one_and_delete({"_id": objid(_id)})


def count_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> int:
    return db[collection_name].count_documents(filter_dict or {})


def increment(collection_name: str, _id, field: str, amount: int = 1):
    return db[collection_name].find_one_and_update(
        {"_id": objid(_id)},
        {"$inc": {field: amount}},
        return_document=ReturnDocument.AFTER,
    )


def delete_many(collection_name: str, filter_dict: Dict[str, Any]) -> int:
    return db[collection_name].delete_many(filter_dict).deleted_count


def update_many(collection_name: str, filter_dict: Dict[str, Any], update: Dict[str, Any]) -> int:
    return db[collection_name].update_many(filter_dict, update).modified_count


def populate(docs: List[Dict[str, Any]], field: str, collection_name: str, projection: Dict[str, Any]):
    """
    Replace the ObjectId(s) stored in ``field`` with the referenced documents.

    Scalar references that no longer resolve become None; list references
    that no longer resolve are dropped, keeping the original order.
    """
    ids = set()
    for doc in docs:
        value = doc.get(field)
        if isinstance(value, list):
            ids.update(value)
        elif value is not None:
            ids.add(value)

    found = {}
    if ids:
        for ref in db[collection_name].find({"_id": {"$in": list(ids)}}, projection):
            found[ref["_id"]] = ref

    for doc in docs:
        value = doc.get(field)
        if isinstance(value, list):
            doc[field] = [found[v] for v in value if v in found]
        elif value is not None:
            doc[field] = found.get(value)
    return docs


# -------------------- Toggle --------------------

def toggle_document(collection_name: str, key: Dict[str, Any]):
    """
    Delete the document matching ``key`` if there is one, otherwise create it.

    Returns ``(doc, created)``. A unique index on ``key`` backs this up: when a
    concurrent request inserts the same key first, the losing insert is
    reported as created with the winner's document.
    """
    existing = db[collection_name].find_one(key)
    if existing:
        db[collection_name].delete_one({"_id": existing["_id"]})
        return existing, False
    try:
        return create_document(collection_name, dict(key)), True
    except DuplicateKeyError:
        logger.info("Concurrent toggle on %s resolved by unique index: %s", collection_name, key)
        return db[collection_name].find_one(key), True


# -------------------- Aggregation --------------------

def run_pipeline(collection_name: str, stages) -> List[Dict[str, Any]]:
    return list(db[collection_name].aggregate(render(stages)))


def run_paginated_pipeline(collection_name: str, stages, page: int, limit: int) -> Dict[str, Any]:
    """
    Execute ``stages`` once, splitting the output into the requested page and
    the total match count with a $facet stage.
    """
    # $skip must fit in a BSON int64
    skip = min((page - 1) * limit, MAX_BSON_INT)
    page_stages = render([Skip(skip), Limit(limit)])
    facet = {"$facet": {"docs": page_stages, "total": render([Count("count")])}}
    result = list(db[collection_name].aggregate(render(stages) + [facet]))

    bucket = result[0] if result else {}
    docs = bucket.get("docs", [])
    total_bucket = bucket.get("total") or []
    total = total_bucket[0]["count"] if total_bucket else 0
    total_pages = math.ceil(total / limit) if limit else 0

    return {
        "docs": docs,
        "total_docs": total,
        "page": page,
        "total_pages": total_pages,
        "limit": limit,
        "has_prev_page": page > 1,
        "has_next_page": page < total_pages,
    }
