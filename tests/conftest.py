from datetime import timedelta
from itertools import count

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import users
from database import ensure_indexes, get_db, utcnow
from main import app
from schemas import Product


@pytest.fixture
def db():
    database = mongomock.MongoClient()["shop_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def make_product(db):
    """Insert a product; later calls get later created_at stamps."""
    ticks = count()
    base = utcnow()

    def _make(name="Widget", price=10.0, stock=10, category="Electronics",
              description="A useful widget", rating=4.0, image_url="https://img.example/w.png"):
        doc = Product(
            name=name,
            description=description,
            price=price,
            image_url=image_url,
            category=category,
            stock=stock,
            rating=rating,
        ).model_dump()
        stamp = base + timedelta(seconds=next(ticks))
        doc["created_at"] = stamp
        doc["updated_at"] = stamp
        return str(db["product"].insert_one(doc).inserted_id)

    return _make


@pytest.fixture
def alice(db):
    token, profile = users.register(db, name="Alice", email="alice@example.com", password="secret1")
    return {"id": profile["id"], "token": token, "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture
def bob(db):
    token, profile = users.register(db, name="Bob", email="bob@example.com", password="secret2")
    return {"id": profile["id"], "token": token, "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def stock_of(db):
    def _stock(product_id):
        return db["product"].find_one({"_id": ObjectId(product_id)})["stock"]
    return _stock
