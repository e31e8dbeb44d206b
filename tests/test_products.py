# tests/test_products.py
import pytest

import products
from database import PRODUCTS
from errors import Conflict, InsufficientStock, NotFound, ValidationError
from tests.conftest import make_product


def _create_many(store, count, **overrides):
    return [
        products.create_product(store, make_product(sku=f"SKU-{i}", name=f"Item {i}", **overrides))
        for i in range(count)
    ]


def test_create_product_normalizes_and_defaults(store, product_payload):
    created = products.create_product(store, product_payload)

    assert len(created["id"]) == 24
    assert created["sku"] == "ABC-1"
    assert created["tags"] == ["phone", "mobile"]
    assert created["isActive"] is True
    assert created["isFeatured"] is False
    assert created["ratings"] == {"average": 0, "count": 0}
    assert created["createdAt"] and created["updatedAt"]


def test_create_duplicate_sku_conflicts_case_insensitively(store, product_payload):
    products.create_product(store, product_payload)
    with pytest.raises(Conflict, match="SKU"):
        products.create_product(store, make_product(sku="ABC-1", name="Other"))


def test_duplicate_sku_conflicts_after_soft_delete(store, product_payload):
    created = products.create_product(store, product_payload)
    products.delete_product(store, created["id"])
    with pytest.raises(Conflict):
        products.create_product(store, product_payload)


def test_sku_lookup_is_case_insensitive(store, product_payload):
    created = products.create_product(store, product_payload)
    assert products.get_product_by_sku(store, "ABC-1")["id"] == created["id"]
    assert products.get_product_by_sku(store, "abc-1")["id"] == created["id"]


def test_soft_deleted_product_is_hidden(store, product_payload):
    created = products.create_product(store, product_payload)
    products.delete_product(store, created["id"])

    with pytest.raises(NotFound):
        products.get_product(store, created["id"])
    with pytest.raises(NotFound):
        products.get_product_by_sku(store, "abc-1")
    assert store.find_by_id(PRODUCTS, created["id"])["isActive"] is False


def test_unknown_product_ids(store):
    missing = "0" * 24
    with pytest.raises(NotFound):
        products.get_product(store, missing)
    with pytest.raises(NotFound):
        products.update_product(store, missing, {"price": 1})
    with pytest.raises(NotFound):
        products.delete_product(store, missing)
    with pytest.raises(NotFound):
        products.adjust_stock(store, missing, 1, "add")


def test_list_products_pagination(store):
    _create_many(store, 25)

    result = products.list_products(store, page=2, limit=10)

    assert len(result["items"]) == 10
    assert result["pagination"] == {"page": 2, "limit": 10, "total": 25, "pages": 3}


def test_list_products_newest_first_by_default(store):
    created = _create_many(store, 3)
    ids = [p["id"] for p in products.list_products(store)["items"]]
    assert ids == [p["id"] for p in reversed(created)]


def test_list_products_excludes_inactive(store):
    created = _create_many(store, 3)
    products.delete_product(store, created[1]["id"])
    result = products.list_products(store)
    assert result["pagination"]["total"] == 2
    assert created[1]["id"] not in [p["id"] for p in result["items"]]


def test_list_products_price_range_is_inclusive(store):
    for i, price in enumerate([5, 10, 15, 20, 25]):
        products.create_product(store, make_product(sku=f"P-{i}", price=price))

    result = products.list_products(store, min_price=10, max_price=20)
    assert sorted(p["price"] for p in result["items"]) == [10, 15, 20]

    result = products.list_products(store, min_price=20)
    assert sorted(p["price"] for p in result["items"]) == [20, 25]


def test_list_products_sorting(store):
    for i, price in enumerate([30, 10, 20]):
        products.create_product(store, make_product(sku=f"P-{i}", price=price))

    asc = products.list_products(store, sort_by="price", sort_order="asc")["items"]
    desc = products.list_products(store, sort_by="price", sort_order="desc")["items"]
    assert [p["price"] for p in asc] == [10, 20, 30]
    assert [p["price"] for p in desc] == [30, 20, 10]


def test_category_match_is_case_insensitive_substring(store):
    products.create_product(store, make_product(sku="A", category="Phones"))
    products.create_product(store, make_product(sku="B", category="Headphones"))
    products.create_product(store, make_product(sku="C", category="Books"))

    names = {p["category"] for p in products.list_products(store, category="PHONE")["items"]}
    assert names == {"Phones", "Headphones"}

    result = products.get_by_category(store, "books")
    assert [p["category"] for p in result["items"]] == ["Books"]
    assert result["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}


def test_category_input_is_not_a_regex(store):
    products.create_product(store, make_product(sku="A", category="Phones"))
    assert products.list_products(store, category=".*")["items"] == []


def test_by_category_hides_soft_deleted(store):
    keep, gone = _create_many(store, 2, category="Phones")
    assert products.get_by_category(store, "phones")["pagination"]["total"] == 2

    products.delete_product(store, gone["id"])

    result = products.get_by_category(store, "phones")
    assert [p["id"] for p in result["items"]] == [keep["id"]]
    assert result["pagination"]["total"] == 1
    assert result["pagination"]["pages"] == 1


def test_build_product_query():
    query = products.build_product_query(category="shoe", min_price=1, search="running")
    assert query["isActive"] is True
    assert query["category"] == {"$regex": "shoe", "$options": "i"}
    assert query["price"] == {"$gte": 1}
    assert query["$text"] == {"$search": "running"}

    assert products.build_product_query() == {"isActive": True}


def test_featured_products(store):
    old = products.create_product(store, make_product(sku="F-1", isFeatured=True))
    new = products.create_product(store, make_product(sku="F-2", isFeatured=True))
    products.create_product(store, make_product(sku="N-1"))
    hidden = products.create_product(store, make_product(sku="F-3", isFeatured=True))
    products.delete_product(store, hidden["id"])

    featured = products.get_featured(store)
    assert [p["id"] for p in featured] == [new["id"], old["id"]]
    assert len(products.get_featured(store, limit=1)) == 1


def test_update_product_validates_and_normalizes(store, product_payload):
    created = products.create_product(store, product_payload)

    updated = products.update_product(store, created["id"], {"price": 249.5, "sku": "new-sku", "tags": ["SALE"]})
    assert updated["price"] == 249.5
    assert updated["sku"] == "NEW-SKU"
    assert updated["tags"] == ["sale"]

    with pytest.raises(ValidationError):
        products.update_product(store, created["id"], {"price": -3})
    with pytest.raises(ValidationError):
        products.update_product(store, created["id"], {"images": ["https://x.io/file.txt"]})


def test_update_product_to_taken_sku_conflicts(store):
    products.create_product(store, make_product(sku="ONE"))
    two = products.create_product(store, make_product(sku="TWO"))
    with pytest.raises(Conflict):
        products.update_product(store, two["id"], {"sku": "one"})


def _run_after_first_read(monkeypatch, store, action):
    """Run ``action`` right after the next ``find_by_id`` returns."""
    read = store.find_by_id

    def read_then_act(*args, **kwargs):
        doc = read(*args, **kwargs)
        monkeypatch.setattr(store, "find_by_id", read)
        action()
        return doc

    monkeypatch.setattr(store, "find_by_id", read_then_act)


def test_update_keeps_stock_changed_after_read(store, monkeypatch, product_payload):
    created = products.create_product(store, product_payload)
    _run_after_first_read(monkeypatch, store, lambda: products.adjust_stock(store, created["id"], 5, "add"))

    updated = products.update_product(store, created["id"], {"price": 10})

    assert updated["price"] == 10
    assert updated["stock"] == 8
    assert store.find_by_id(PRODUCTS, created["id"])["stock"] == 8


def test_update_keeps_delete_made_after_read(store, monkeypatch, product_payload):
    created = products.create_product(store, product_payload)
    _run_after_first_read(monkeypatch, store, lambda: products.delete_product(store, created["id"]))

    products.update_product(store, created["id"], {"price": 10})

    assert store.find_by_id(PRODUCTS, created["id"])["isActive"] is False
    with pytest.raises(NotFound):
        products.get_product(store, created["id"])


def test_update_with_null_clears_optional_fields(store):
    created = products.create_product(
        store, make_product(discount={"type": "percentage", "value": 10})
    )
    assert created["discount"]["type"] == "percentage"

    updated = products.update_product(store, created["id"], {"brand": None, "discount": None})

    assert "brand" not in updated
    assert "discount" not in updated
    assert updated["name"] == "Smartphone X"
    raw = store.find_by_id(PRODUCTS, created["id"])
    assert "brand" not in raw and "discount" not in raw


def test_update_with_null_required_field_is_rejected(store, product_payload):
    created = products.create_product(store, product_payload)
    with pytest.raises(ValidationError):
        products.update_product(store, created["id"], {"name": None})
    assert store.find_by_id(PRODUCTS, created["id"])["name"] == "Smartphone X"


def test_stock_add(store, product_payload):
    created = products.create_product(store, product_payload)
    assert products.adjust_stock(store, created["id"], 5, "add") == {"stock": 8}


def test_stock_subtract(store, product_payload):
    created = products.create_product(store, product_payload)
    assert products.adjust_stock(store, created["id"], 3, "subtract") == {"stock": 0}


def test_stock_subtract_more_than_available(store, product_payload):
    created = products.create_product(store, product_payload)

    with pytest.raises(InsufficientStock):
        products.adjust_stock(store, created["id"], 5, "subtract")

    assert store.find_by_id(PRODUCTS, created["id"])["stock"] == 3


def test_stock_rejects_bad_input(store, product_payload):
    created = products.create_product(store, product_payload)
    with pytest.raises(ValidationError):
        products.adjust_stock(store, created["id"], 1, "multiply")
    with pytest.raises(ValidationError):
        products.adjust_stock(store, created["id"], -1, "add")


def test_list_categories_distinct_sorted_active_only(store):
    products.create_product(store, make_product(sku="A", category="Phones"))
    products.create_product(store, make_product(sku="B", category="Audio"))
    products.create_product(store, make_product(sku="C", category="Phones"))
    gone = products.create_product(store, make_product(sku="D", category="Books"))
    products.delete_product(store, gone["id"])

    assert products.list_categories(store) == ["Audio", "Phones"]
