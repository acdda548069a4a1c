"""HTTP routes, status codes and error bodies."""
import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

import cart
import orders
import users


@pytest.fixture
def lamp(make_product):
    return make_product(name="Lamp", price=25.0, stock=3, category="Home & Garden")


@pytest.fixture
def phone(make_product):
    return make_product(name="Phone", price=400.0, stock=1, category="Electronics", rating=4.9)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "running" in response.json()["message"]


def test_list_products_query_aliases(client, lamp, phone):
    response = client.get("/api/products", params={"category": "Electronics", "sortBy": "price_asc"})
    assert response.status_code == 200
    assert [p["id"] for p in response.json()] == [phone]

    response = client.get("/api/products", params={"minPrice": 10, "maxPrice": 25})
    assert [p["name"] for p in response.json()] == ["Lamp"]


def test_empty_price_range_is_not_an_error(client, lamp, phone):
    response = client.get("/api/products", params={"minPrice": 500, "maxPrice": 10})
    assert response.status_code == 200
    assert response.json() == []

    response = client.get("/api/products", params={"minPrice": -10, "maxPrice": 30})
    assert [p["name"] for p in response.json()] == ["Lamp"]


def test_categories_route_is_not_a_product_id(client, lamp, phone):
    response = client.get("/api/products/categories/list")
    assert response.status_code == 200
    assert response.json() == ["Electronics", "Home & Garden"]


def test_get_product_and_404(client, lamp):
    assert client.get(f"/api/products/{lamp}").json()["name"] == "Lamp"
    response = client.get(f"/api/products/{ObjectId()}")
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


def test_seed(client):
    response = client.post("/api/products/seed", json={})
    assert response.status_code == 200
    assert response.json()["inserted"] > 0


@pytest.mark.parametrize("method, path", [
    ("GET", "/api/cart"),
    ("POST", "/api/cart/add"),
    ("DELETE", "/api/cart/clear"),
    ("GET", "/api/orders"),
    ("POST", "/api/orders/create"),
    ("GET", "/api/profile"),
])
def test_auth_required(client, method, path):
    response = client.request(method, path, json={})
    assert response.status_code == 401
    assert response.json()["kind"] == "unauthorized"


def test_bad_token(client):
    response = client.get("/api/cart", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_register_and_login(client):
    response = client.post("/api/auth/register", json={
        "name": "Erin", "email": "erin@example.com", "password": "pass1234",
    })
    assert response.status_code == 201
    token = response.json()["token"]

    response = client.post("/api/auth/login", json={"email": "erin@example.com", "password": "pass1234"})
    assert response.status_code == 200

    response = client.get("/api/profile", headers={"Authorization": f"Bearer {token}"})
    assert response.json()["name"] == "Erin"
    assert "password" not in response.json()


def test_login_failure(client, alice):
    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "nope"})
    assert response.status_code == 401


def test_cart_flow(client, alice, lamp):
    h = alice["headers"]
    response = client.post("/api/cart/add", json={"product_id": lamp, "quantity": 2}, headers=h)
    assert response.status_code == 201
    entry_id = response.json()["cart_item"]["id"]

    response = client.post("/api/cart/add", json={"product_id": lamp, "quantity": 3}, headers=h)
    assert response.status_code == 200
    assert response.json()["cart_item"]["quantity"] == 5

    cart = client.get("/api/cart", headers=h).json()
    assert len(cart) == 1
    assert cart[0]["product"]["name"] == "Lamp"

    response = client.put(f"/api/cart/update/{entry_id}", json={"quantity": 1}, headers=h)
    assert response.json()["cart_item"]["quantity"] == 1

    response = client.put(f"/api/cart/update/{entry_id}", json={"quantity": 0}, headers=h)
    assert response.status_code == 200
    assert "cart_item" not in response.json()
    assert client.get("/api/cart", headers=h).json() == []


def test_add_unknown_product(client, alice):
    response = client.post("/api/cart/add", json={"product_id": str(ObjectId())}, headers=alice["headers"])
    assert response.status_code == 404


def test_add_invalid_quantity_is_400(client, alice, lamp):
    response = client.post("/api/cart/add", json={"product_id": lamp, "quantity": 0}, headers=alice["headers"])
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"


def test_remove_other_users_entry(client, alice, bob, lamp):
    entry_id = client.post(
        "/api/cart/add", json={"product_id": lamp}, headers=alice["headers"]
    ).json()["cart_item"]["id"]

    assert client.delete(f"/api/cart/remove/{entry_id}", headers=bob["headers"]).status_code == 404
    assert client.delete(f"/api/cart/remove/{entry_id}", headers=alice["headers"]).status_code == 200
    assert client.delete(f"/api/cart/remove/{entry_id}", headers=alice["headers"]).status_code == 404


def test_clear_cart(client, alice, lamp, phone):
    h = alice["headers"]
    client.post("/api/cart/add", json={"product_id": lamp}, headers=h)
    client.post("/api/cart/add", json={"product_id": phone}, headers=h)
    response = client.delete("/api/cart/clear", headers=h)
    assert response.json()["deleted"] == 2


def order_body(items, total=0.0):
    return {
        "items": items,
        "total_amount": total,
        "shipping_address": "9 Pine Rd",
        "payment_method": "Cash on Delivery",
    }


def test_create_order(client, alice, lamp, phone):
    h = alice["headers"]
    client.post("/api/cart/add", json={"product_id": phone}, headers=h)

    response = client.post("/api/orders/create", json=order_body([{"product_id": lamp, "quantity": 3}], 82.49), headers=h)
    assert response.status_code == 201
    order = response.json()["order"]
    assert order["status"] == "Pending"
    assert order["items"][0]["product"]["stock"] == 0
    assert client.get("/api/cart", headers=h).json() == []

    listed = client.get("/api/orders", headers=h).json()
    assert [o["id"] for o in listed] == [order["id"]]
    assert client.get(f"/api/orders/{order['id']}", headers=h).json()["total_amount"] == 82.49


def test_create_order_insufficient_stock(client, alice, lamp, phone):
    response = client.post(
        "/api/orders/create",
        json=order_body([{"product_id": lamp, "quantity": 1}, {"product_id": phone, "quantity": 2}]),
        headers=alice["headers"],
    )
    assert response.status_code == 400
    body = response.json()
    assert body["kind"] == "insufficient_stock"
    assert body["product_id"] == phone
    assert body["available"] == 1
    assert "Phone" in body["detail"]
    assert client.get(f"/api/products/{lamp}").json()["stock"] == 3


def test_create_order_unknown_product(client, alice):
    response = client.post(
        "/api/orders/create",
        json=order_body([{"product_id": str(ObjectId()), "quantity": 1}]),
        headers=alice["headers"],
    )
    assert response.status_code == 404


@pytest.mark.parametrize("body", [
    order_body([]),
    order_body([{"product_id": "x", "quantity": 0}]),
    {**order_body([{"product_id": "x", "quantity": 1}]), "shipping_address": ""},
    {"items": [{"product_id": "x", "quantity": 1}]},
])
def test_create_order_validation(client, alice, body):
    response = client.post("/api/orders/create", json=body, headers=alice["headers"])
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"


def test_order_of_other_user(client, alice, bob, lamp):
    order = client.post(
        "/api/orders/create", json=order_body([{"product_id": lamp, "quantity": 1}]), headers=alice["headers"]
    ).json()["order"]
    assert client.get(f"/api/orders/{order['id']}", headers=bob["headers"]).status_code == 404
    assert client.get("/api/orders", headers=bob["headers"]).json() == []


def test_update_profile(client, alice):
    response = client.put("/api/profile/update", json={"phone": "555-0101"}, headers=alice["headers"])
    assert response.status_code == 200
    assert response.json()["user"]["phone"] == "555-0101"
    assert response.json()["user"]["name"] == "Alice"


def test_database_diagnostics(client):
    response = client.get("/test")
    assert response.status_code == 200
    assert response.json()["backend"] == "✅ Running"


def broken_lookup(*args, **kwargs):
    raise PyMongoError("connection reset")


def test_database_error_on_cart_add_is_internal(client, alice, lamp, monkeypatch):
    monkeypatch.setattr(cart, "find_product", broken_lookup)
    response = client.post("/api/cart/add", json={"product_id": lamp}, headers=alice["headers"])
    assert response.status_code == 500
    assert response.json() == {"kind": "internal", "detail": "Database error"}


def test_database_error_while_checking_order_is_internal(client, alice, lamp, monkeypatch):
    monkeypatch.setattr(orders, "find_product", broken_lookup)
    response = client.post(
        "/api/orders/create", json=order_body([{"product_id": lamp, "quantity": 1}]), headers=alice["headers"]
    )
    assert response.status_code == 500
    assert response.json()["kind"] == "internal"
    assert client.get(f"/api/products/{lamp}").json()["stock"] == 3


def test_concurrent_registration_of_same_email(client, monkeypatch):
    real_create = users.create_document

    def create_after_rival(database, collection_name, data):
        # Another request stores the same email between the check and the insert.
        real_create(database, collection_name, {"name": "Rival", "email": data.email, "password": "x"})
        return real_create(database, collection_name, data)

    monkeypatch.setattr(users, "create_document", create_after_rival)
    response = client.post("/api/auth/register", json={
        "name": "Gail", "email": "gail@example.com", "password": "pass1234",
    })
    assert response.status_code == 400
    assert response.json() == {"kind": "validation_error", "detail": "Email already registered"}
