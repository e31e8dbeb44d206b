"""
MongoDB access for the API.

A ``Store`` wraps one pymongo ``Database`` and is created once at startup
(``connect``) and closed at shutdown (``Store.close``). Domain functions take
the store as their first argument instead of reaching for a module global.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, TEXT, MongoClient, ReturnDocument
from pymongo.database import Database

from config import Settings
from logging_setup import get_logger

logger = get_logger(__name__)

USERS = "user"
PRODUCTS = "product"

Filter = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]


def active(filt: Optional[Mapping[str, Any]] = None) -> Filter:
    """Restrict ``filt`` to documents that have not been soft-deleted."""
    out = dict(filt or {})
    out["isActive"] = True
    return out


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id")) if doc.get("_id") else None
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
        elif isinstance(v, dict):
            doc[k] = {
                sk: sv.isoformat() if isinstance(sv, datetime) else sv
                for sk, sv in v.items()
            }
    return doc


def paginate(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


class Store:
    def __init__(self, db: Database, client: Optional[MongoClient] = None):
        self.db = db
        self.client = client

    def ensure_indexes(self) -> None:
        users = self.db[USERS]
        users.create_index("email", unique=True)

        products = self.db[PRODUCTS]
        products.create_index("sku", unique=True)
        products.create_index([("name", TEXT), ("description", TEXT), ("tags", TEXT)])
        products.create_index([("category", ASCENDING), ("isActive", ASCENDING)])
        products.create_index("price")
        products.create_index([("createdAt", DESCENDING)])

    def ping(self) -> bool:
        try:
            self.db.command("ping")
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", e)
            return False

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB disconnected")

    # ---------- Writes ----------

    def create_document(self, collection_name: str, data: Dict[str, Any]) -> str:
        doc = dict(data)
        now = utcnow()
        doc["createdAt"] = now
        doc["updatedAt"] = now
        result = self.db[collection_name].insert_one(doc)
        return str(result.inserted_id)

    def update_by_id(
        self,
        collection_name: str,
        id_: Any,
        changes: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
        unset: Sequence[str] = (),
    ) -> Optional[Dict[str, Any]]:
        """Set only the given fields (and clear those in ``unset``) on one document."""
        oid = to_object_id(id_)
        if oid is None:
            return None
        changes = dict(changes)
        changes["updatedAt"] = utcnow()
        update: Dict[str, Any] = {"$set": changes}
        if unset:
            update["$unset"] = {field: "" for field in unset}
        return self.db[collection_name].find_one_and_update(
            {"_id": oid},
            update,
            projection=projection,
            return_document=ReturnDocument.AFTER,
        )

    def increment(
        self,
        collection_name: str,
        id_: Any,
        field: str,
        amount: int,
        guard: Optional[Filter] = None,
    ) -> Optional[Dict[str, Any]]:
        """Atomically add ``amount`` to ``field`` when ``guard`` also matches."""
        oid = to_object_id(id_)
        if oid is None:
            return None
        filt: Filter = {"_id": oid}
        filt.update(guard or {})
        return self.db[collection_name].find_one_and_update(
            filt,
            {"$inc": {field: amount}, "$set": {"updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    # ---------- Reads ----------

    def find_by_id(
        self,
        collection_name: str,
        id_: Any,
        projection: Optional[Dict[str, int]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Raw lookup by id; does not look at ``isActive``."""
        oid = to_object_id(id_)
        if oid is None:
            return None
        return self.db[collection_name].find_one({"_id": oid}, projection)

    def find_one(
        self,
        collection_name: str,
        filt: Filter,
        projection: Optional[Dict[str, int]] = None,
    ) -> Optional[Dict[str, Any]]:
        return self.db[collection_name].find_one(filt, projection)

    def get_documents(
        self,
        collection_name: str,
        filt: Optional[Filter] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: Optional[int] = None,
        projection: Optional[Dict[str, int]] = None,
    ) -> List[Dict[str, Any]]:
        cursor = self.db[collection_name].find(filt or {}, projection)
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def count(self, collection_name: str, filt: Optional[Filter] = None) -> int:
        return self.db[collection_name].count_documents(filt or {})

    def distinct(self, collection_name: str, field: str, filt: Optional[Filter] = None) -> List[Any]:
        return self.db[collection_name].distinct(field, filt or {})

    def page(
        self,
        collection_name: str,
        filt: Filter,
        page: int,
        limit: int,
        sort: Sort,
        projection: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        """One page of matches plus ``{page, limit, total, pages}``."""
        items = self.get_documents(
            collection_name,
            filt,
            sort=sort,
            skip=(page - 1) * limit,
            limit=limit,
            projection=projection,
        )
        total = self.count(collection_name, filt)
        return {
            "items": [serialize_doc(x) for x in items],
            "pagination": paginate(page, limit, total),
        }


def connect(settings: Settings) -> Optional[Store]:
    """Open the MongoDB client described by ``settings``.

    Returns None when no DATABASE_URL is configured so the API (and its docs)
    can still start; data routes then fail with a 500.
    """
    if not settings.database_url:
        logger.warning("DATABASE_URL is not set. Skipping MongoDB connection.")
        return None
    client = MongoClient(settings.database_url)
    store = Store(client[settings.database_name], client)
    logger.info("MongoDB connected: %s", settings.database_name)
    return store
