"""
Product catalog operations.
"""

import re
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from database import PRODUCTS, Filter, Store, active, serialize_doc
from errors import Conflict, InsufficientStock, NotFound, ValidationError
from logging_setup import get_logger
from schemas import ProductCreate, ProductRecord, changed_fields, to_document, validate

logger = get_logger(__name__)

SKU_TAKEN = "Product with this SKU already exists"
PRODUCT_NOT_FOUND = "Product not found"
STOCK_OPERATIONS = ("add", "subtract")
PROTECTED_FIELDS = {"isActive", "is_active"}


def _normalize_sku(sku: Any) -> Any:
    return sku.strip().upper() if isinstance(sku, str) else sku


def category_filter(category: str) -> Dict[str, Any]:
    """Case-insensitive substring match on category."""
    return {"$regex": re.escape(category), "$options": "i"}


def build_product_query(
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    search: Optional[str] = None,
) -> Filter:
    filt = active()
    if category:
        filt["category"] = category_filter(category)
    if min_price is not None or max_price is not None:
        price: Dict[str, float] = {}
        if min_price is not None:
            price["$gte"] = min_price
        if max_price is not None:
            price["$lte"] = max_price
        filt["price"] = price
    if search:
        filt["$text"] = {"$search": search}
    return filt


def _newest_first():
    return [("createdAt", -1), ("_id", -1)]


def create_product(store: Store, data: Dict[str, Any]) -> Dict[str, Any]:
    sku = _normalize_sku(data.get("sku"))
    if sku and store.find_one(PRODUCTS, {"sku": sku}):
        raise Conflict(SKU_TAKEN)

    product = validate(ProductCreate, data)
    record = ProductRecord.model_validate(product.model_dump())

    try:
        product_id = store.create_document(PRODUCTS, to_document(record))
    except DuplicateKeyError:
        raise Conflict(SKU_TAKEN)

    logger.info("Created product %s", record.sku)
    return serialize_doc(store.find_by_id(PRODUCTS, product_id))


def list_products(
    store: Store,
    page: int = 1,
    limit: int = 10,
    category: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    search: Optional[str] = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> Dict[str, Any]:
    direction = 1 if sort_order == "asc" else -1
    filt = build_product_query(category, min_price, max_price, search)
    return store.page(PRODUCTS, filt, page, limit, sort=[(sort_by, direction), ("_id", direction)])


def get_product(store: Store, product_id: str) -> Dict[str, Any]:
    doc = store.find_by_id(PRODUCTS, product_id)
    if not doc or not doc.get("isActive"):
        raise NotFound(PRODUCT_NOT_FOUND)
    return serialize_doc(doc)


def get_product_by_sku(store: Store, sku: str) -> Dict[str, Any]:
    doc = store.find_one(PRODUCTS, active({"sku": _normalize_sku(sku)}))
    if not doc:
        raise NotFound(PRODUCT_NOT_FOUND)
    return serialize_doc(doc)


def update_product(store: Store, product_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in changes.items() if k not in PROTECTED_FIELDS}
    current = store.find_by_id(PRODUCTS, product_id)
    if not current:
        raise NotFound(PRODUCT_NOT_FOUND)

    merged = validate(ProductRecord, {**current, **changes})
    to_set, to_unset = changed_fields(merged, changes)

    try:
        updated = store.update_by_id(PRODUCTS, product_id, to_set, unset=to_unset)
    except DuplicateKeyError:
        raise Conflict(SKU_TAKEN)
    if not updated:
        raise NotFound(PRODUCT_NOT_FOUND)
    return serialize_doc(updated)


def delete_product(store: Store, product_id: str) -> None:
    if not store.update_by_id(PRODUCTS, product_id, {"isActive": False}):
        raise NotFound(PRODUCT_NOT_FOUND)
    logger.info("Deactivated product %s", product_id)


def get_featured(store: Store, limit: int = 10) -> List[Dict[str, Any]]:
    docs = store.get_documents(
        PRODUCTS,
        active({"isFeatured": True}),
        sort=_newest_first(),
        limit=limit,
    )
    return [serialize_doc(d) for d in docs]


def get_by_category(store: Store, category: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    filt = active({"category": category_filter(category)})
    return store.page(PRODUCTS, filt, page, limit, sort=_newest_first())


def adjust_stock(store: Store, product_id: str, quantity: int, operation: str = "add") -> Dict[str, int]:
    if operation not in STOCK_OPERATIONS:
        raise ValidationError("Validation error", ["operation: must be 'add' or 'subtract'"])
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("Validation error", ["quantity: must be a non-negative integer"])

    if operation == "add":
        doc = store.increment(PRODUCTS, product_id, "stock", quantity)
    else:
        # Matches only while stock >= quantity.
        doc = store.increment(
            PRODUCTS, product_id, "stock", -quantity, guard={"stock": {"$gte": quantity}}
        )

    if doc is None:
        if not store.find_by_id(PRODUCTS, product_id):
            raise NotFound(PRODUCT_NOT_FOUND)
        raise InsufficientStock("Insufficient stock")

    logger.info("Stock %s %d on product %s -> %d", operation, quantity, product_id, doc["stock"])
    return {"stock": doc["stock"]}


def list_categories(store: Store) -> List[str]:
    return sorted(store.distinct(PRODUCTS, "category", active()))
