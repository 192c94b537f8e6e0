# tests/test_api.py

"""
Integration tests for the Order Service HTTP API.
These make real requests through FastAPI's TestClient against the SQLite
test database.
"""

import uuid

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from order_service import ledger
from order_service.models import Order


def test_read_root(client: TestClient):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Welcome to the Order Service!"}


def test_health_check(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "order-service"}


# -----------------------------
# POST /orders
# -----------------------------


def test_place_order_success(client: TestClient, make_customer, make_product):
    customer = make_customer()
    product_id = make_product("A", "10.00", 5)

    response = client.post(
        "/orders",
        json={"items": [{"product_id": str(product_id), "quantity": 3}]},
        headers=customer.headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    order = body["order"]
    assert order["user_id"] == str(customer.id)
    assert isinstance(order["total_amount"], float)
    assert order["total_amount"] == 30.0
    assert order["status"] == "pending"
    assert order["id"]
    assert order["created_at"]
    assert len(order["items"]) == 1
    assert order["items"][0]["quantity"] == 3
    assert isinstance(order["items"][0]["price"], float)
    assert order["items"][0]["price"] == 10.0
    assert order["items"][0]["product"]["name"] == "A"

    product = client.get(f"/products/{product_id}").json()
    assert product["stock"] == 2
    assert isinstance(product["price"], float)
    assert product["price"] == 10.0


def test_place_order_requires_identity(client: TestClient, make_product):
    product_id = make_product()
    body = {"items": [{"product_id": str(product_id), "quantity": 1}]}

    response = client.post("/orders", json=body)
    assert response.status_code == 401
    assert response.json() == {"error": "Missing authorization header"}

    response = client.post(
        "/orders", json=body, headers={"Authorization": "Bearer not-a-real-token"}
    )
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid or expired token"}


def test_place_order_empty_cart(client: TestClient, make_customer):
    customer = make_customer()
    response = client.post("/orders", json={"items": []}, headers=customer.headers)
    assert response.status_code == 400
    assert response.json() == {"error": "Cart is empty"}


def test_place_order_malformed_bodies(client: TestClient, make_customer, make_product):
    customer = make_customer()
    product_id = str(make_product())

    for body in (
        {},
        {"items": [{"product_id": product_id, "quantity": 0}]},
        {"items": [{"product_id": product_id, "quantity": -2}]},
        {"items": [{"product_id": product_id, "quantity": "3"}]},
        {"items": [{"product_id": "not-a-uuid", "quantity": 1}]},
        {"items": [{"quantity": 1}]},
    ):
        response = client.post("/orders", json=body, headers=customer.headers)
        assert response.status_code == 400, body
        assert "error" in response.json()


def test_place_order_unknown_product(client: TestClient, make_customer, make_product):
    customer = make_customer()
    existing = make_product("Existing", "1.00", 5)
    missing = uuid.uuid4()

    response = client.post(
        "/orders",
        json={
            "items": [
                {"product_id": str(existing), "quantity": 1},
                {"product_id": str(missing), "quantity": 1},
            ]
        },
        headers=customer.headers,
    )

    assert response.status_code == 404
    assert str(missing) in response.json()["error"]
    assert client.get("/orders", headers=customer.headers).json() == []
    assert client.get(f"/products/{existing}").json()["stock"] == 5


def test_place_order_insufficient_stock(client: TestClient, make_customer, make_product):
    customer = make_customer()
    product_id = make_product("B", "20.00", 2)

    response = client.post(
        "/orders",
        json={"items": [{"product_id": str(product_id), "quantity": 5}]},
        headers=customer.headers,
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Insufficient stock for B. Available: 2"
    assert body["available"] == 2
    assert body["requested"] == 5
    assert body["product_id"] == str(product_id)
    assert client.get(f"/products/{product_id}").json()["stock"] == 2


def test_place_order_duplicate_products(client: TestClient, make_customer, make_product):
    customer = make_customer()
    product_id = str(make_product())

    response = client.post(
        "/orders",
        json={
            "items": [
                {"product_id": product_id, "quantity": 1},
                {"product_id": product_id, "quantity": 1},
            ]
        },
        headers=customer.headers,
    )
    assert response.status_code == 400


def test_place_order_commit_failure(
    client: TestClient, monkeypatch, make_customer, make_product, count_rows
):
    customer = make_customer()
    product_id = make_product("Fragile", "3.00", 4)

    def broken_insert(db, order, lines):
        raise OperationalError("INSERT INTO order_items", {}, Exception("server closed the connection"))

    monkeypatch.setattr(ledger, "insert_line_items", broken_insert)

    response = client.post(
        "/orders",
        json={"items": [{"product_id": str(product_id), "quantity": 1}]},
        headers=customer.headers,
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create order"}
    assert count_rows(Order) == 0
    assert client.get(f"/products/{product_id}").json()["stock"] == 4


# -----------------------------
# Order history and status
# -----------------------------


def _order(client, customer, product_id, quantity=1):
    response = client.post(
        "/orders",
        json={"items": [{"product_id": str(product_id), "quantity": quantity}]},
        headers=customer.headers,
    )
    assert response.status_code == 200
    return response.json()["order"]


def test_customers_only_see_their_own_orders(
    client: TestClient, make_customer, make_admin, make_product
):
    alice, bob, admin = make_customer(), make_customer(), make_admin()
    product_id = make_product(stock=10)
    alice_order = _order(client, alice, product_id)
    bob_order = _order(client, bob, product_id, quantity=2)

    alice_view = client.get("/orders", headers=alice.headers).json()
    assert [o["id"] for o in alice_view] == [alice_order["id"]]

    admin_view = client.get("/orders", headers=admin.headers).json()
    assert {o["id"] for o in admin_view} == {alice_order["id"], bob_order["id"]}

    response = client.get(f"/orders/{bob_order['id']}", headers=alice.headers)
    assert response.status_code == 404

    response = client.get(f"/orders/{bob_order['id']}", headers=bob.headers)
    assert response.status_code == 200
    assert response.json()["items"][0]["quantity"] == 2
    assert response.json()["items"][0]["product"]["id"] == str(product_id)
    assert admin_view[0]["items"][0]["product"]["name"] == "Widget"


def test_get_order_not_found(client: TestClient, make_customer):
    customer = make_customer()
    response = client.get(f"/orders/{uuid.uuid4()}", headers=customer.headers)
    assert response.status_code == 404
    assert "error" in response.json()


def test_admin_updates_order_status(
    client: TestClient, make_customer, make_admin, make_product
):
    customer, admin = make_customer(), make_admin()
    order = _order(client, customer, make_product())

    response = client.patch(
        f"/orders/{order['id']}/status", json={"status": "shipped"}, headers=customer.headers
    )
    assert response.status_code == 403

    response = client.patch(
        f"/orders/{order['id']}/status", json={"status": "teleported"}, headers=admin.headers
    )
    assert response.status_code == 400

    response = client.patch(
        f"/orders/{order['id']}/status", json={"status": "shipped"}, headers=admin.headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "shipped"
    assert response.json()["total_amount"] == order["total_amount"]


# -----------------------------
# Catalog
# -----------------------------


def test_catalog_is_public(client: TestClient, make_product):
    make_product("Apple Laptop", "1000.00", 10, category="electronics", description="Powerful machine")
    make_product("Banana Phone", "500.00", 20, category="electronics", description="Fruit-themed device")
    make_product("Orange Juice", "5.00", 50, category="grocery", description="Freshly squeezed")

    response = client.get("/products/")
    assert response.status_code == 200
    assert [p["name"] for p in response.json()] == ["Apple Laptop", "Banana Phone", "Orange Juice"]

    # search by name, description, case-insensitive
    assert [p["name"] for p in client.get("/products/?search=apple").json()] == ["Apple Laptop"]
    assert [p["name"] for p in client.get("/products/?search=squeezed").json()] == ["Orange Juice"]

    response = client.get("/products/?category=electronics")
    assert len(response.json()) == 2

    response = client.get("/products/?skip=1&limit=1")
    assert [p["name"] for p in response.json()] == ["Banana Phone"]


def test_get_product_not_found(client: TestClient):
    response = client.get(f"/products/{uuid.uuid4()}")
    assert response.status_code == 404
    assert "not found" in response.json()["error"]


def test_only_admins_manage_catalog(client: TestClient, make_customer, make_admin):
    customer, admin = make_customer(), make_admin()
    new_product = {
        "name": "Webcam HD",
        "description": "1080p webcam",
        "price": "59.99",
        "stock": 60,
        "category": "electronics",
    }

    assert client.post("/products/", json=new_product).status_code == 401
    assert client.post("/products/", json=new_product, headers=customer.headers).status_code == 403

    response = client.post("/products/", json=new_product, headers=admin.headers)
    assert response.status_code == 201
    created = response.json()
    assert created["name"] == "Webcam HD"
    assert created["price"] == 59.99
    assert created["stock"] == 60


def test_update_product_cannot_touch_stock(client: TestClient, make_admin, make_product):
    admin = make_admin()
    product_id = make_product("Mouse", "29.99", 75)

    response = client.put(
        f"/products/{product_id}",
        json={"name": "Wireless Mouse", "price": "24.99", "stock": 9999},
        headers=admin.headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Wireless Mouse"
    assert body["price"] == 24.99
    assert body["stock"] == 75


def test_delete_product(client: TestClient, make_customer, make_admin, make_product):
    customer, admin = make_customer(), make_admin()
    unused = make_product("Unused")
    ordered = make_product("Ordered")
    _order(client, customer, ordered)

    assert client.delete(f"/products/{unused}", headers=customer.headers).status_code == 403
    assert client.delete(f"/products/{unused}", headers=admin.headers).status_code == 204
    assert client.get(f"/products/{unused}").status_code == 404

    response = client.delete(f"/products/{ordered}", headers=admin.headers)
    assert response.status_code == 409
    assert client.get(f"/products/{ordered}").status_code == 200


# -----------------------------
# Profile
# -----------------------------


def test_get_own_profile(client: TestClient, make_customer):
    customer = make_customer()

    assert client.get("/profile").status_code == 401

    response = client.get("/profile", headers=customer.headers)
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == str(customer.id)
    assert body["full_name"] == "Test user"
    assert body["role"] == "user"
    assert "token_hash" not in body


def test_update_own_full_name(client: TestClient, make_customer):
    customer = make_customer()

    response = client.patch("/profile", json={"full_name": "Ada Lovelace"}, headers=customer.headers)
    assert response.status_code == 200
    assert response.json()["full_name"] == "Ada Lovelace"
    assert client.get("/profile", headers=customer.headers).json()["full_name"] == "Ada Lovelace"


def test_customer_cannot_change_own_role(client: TestClient, make_customer):
    customer = make_customer()

    response = client.patch(
        "/profile", json={"full_name": "Sneaky", "role": "admin"}, headers=customer.headers
    )
    assert response.status_code == 400

    profile = client.get("/profile", headers=customer.headers).json()
    assert profile["role"] == "user"
    assert profile["full_name"] == "Test user"

    # still not an admin afterwards
    response = client.patch(
        f"/orders/{uuid.uuid4()}/status", json={"status": "shipped"}, headers=customer.headers
    )
    assert response.status_code == 403
