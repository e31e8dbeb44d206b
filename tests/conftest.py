# tests/conftest.py
import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import Store
from main import create_app


@pytest.fixture
def settings():
    """Explicit settings so tests never depend on the process environment."""
    return Settings(jwt_secret="test-secret", log_level="WARNING")


@pytest.fixture
def store():
    """A Store over an in-memory MongoDB with the production indexes."""
    client = mongomock.MongoClient()
    store = Store(client["ecommerce_test"], client)
    store.ensure_indexes()
    return store


@pytest.fixture
def client(settings, store):
    app = create_app(settings=settings, store=store)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def user_payload():
    return {
        "name": "Alice Example",
        "email": "alice@example.com",
        "password": "secret123",
        "phone": "555-0100",
        "address": {
            "street": "1 Main St",
            "city": "Springfield",
            "state": "IL",
            "zipCode": "62701",
            "country": "US",
        },
    }


def make_product(**overrides):
    product = {
        "name": "Smartphone X",
        "description": "A very smart phone.",
        "price": 199.0,
        "category": "Electronics",
        "brand": "Acme",
        "sku": "abc-1",
        "stock": 3,
        "images": ["https://cdn.example.com/img/phone.jpg"],
        "specifications": {"color": "black"},
        "tags": ["  Phone ", "MOBILE"],
    }
    product.update(overrides)
    return product


@pytest.fixture
def product_payload():
    return make_product()
