from __future__ import annotations

import httpx
import pytest

from atelier.api import MOCK_SECRET_HEADER
from atelier.app import create_app
from atelier.auth import SessionTokens
from atelier.config import Settings
from atelier.db import Database
from atelier.domain import OrderStatus

from conftest import FakeVerifier, add_code, add_product, add_user, bearer, mark_orders, ok


async def _sign_in(http: httpx.AsyncClient, email: str = "ada@example.com") -> dict:
    response = await http.put("/api/user", json={"token": f"good:{email}"})
    assert response.status_code == 200, response.text
    return response.json()


async def _admin(http: httpx.AsyncClient) -> dict[str, str]:
    response = await http.post("/api/admin/login", json={"username": "admin", "password": "hunter2"})
    assert response.status_code == 200, response.text
    return bearer(response.json()["token"])


# ═══════════════════════════════════════════════════════════════════════════════
# Sessions
# ═══════════════════════════════════════════════════════════════════════════════


async def test_sign_in_creates_user_and_returns_pair(http: httpx.AsyncClient):
    body = await _sign_in(http, "Ada@Example.com")

    assert body["user"]["email"] == "ada@example.com"
    assert body["user"]["name"] == "Ada"
    assert body["token"] and body["refreshToken"]

    again = await _sign_in(http, "ada@example.com")
    assert again["user"]["id"] == body["user"]["id"]


async def test_sign_in_with_bad_identity(http: httpx.AsyncClient):
    response = await http.put("/api/user", json={"token": "forged"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid identity token"}


async def test_refresh_endpoint(http: httpx.AsyncClient):
    body = await _sign_in(http)

    response = await http.post("/api/user", json={"refreshToken": body["refreshToken"]})
    assert response.status_code == 200
    assert set(response.json()) == {"token", "refreshToken"}

    bad = await http.post("/api/user", json={"refreshToken": body["token"]})
    assert bad.status_code == 401


@pytest.mark.parametrize("path", ["/api/cart", "/api/orders"])
async def test_protected_routes_need_a_token(http: httpx.AsyncClient, path: str):
    assert (await http.get(path)).status_code == 401
    assert (await http.get(path, headers=bearer("garbage"))).status_code == 401


# ═══════════════════════════════════════════════════════════════════════════════
# Storefront
# ═══════════════════════════════════════════════════════════════════════════════


async def test_cart_to_order_flow(http: httpx.AsyncClient, db: Database):
    auth = bearer((await _sign_in(http))["token"])
    ring = await add_product(db, name="Rose Quartz Ring", price="500")
    stud = await add_product(db, name="Amethyst Stud", price="250")
    await add_code(db, code="SAVE10", value="10")

    added = await http.post("/api/cart", json={"productId": ring, "quantity": 2}, headers=auth)
    assert added.status_code == 201
    assert added.json()["quantity"] == 2
    await http.post("/api/cart", json={"productId": stud}, headers=auth)

    cart = (await http.get("/api/cart", headers=auth)).json()
    assert cart["total"] == "1250.00"
    assert len(cart["items"]) == 2

    quote = await http.post("/api/discounts", json={"code": "save10", "cartTotal": "1250"}, headers=auth)
    assert quote.status_code == 200
    assert quote.json()["discountAmount"] == "125.00"

    placed = await http.post(
        "/api/orders",
        json={"shippingAddress": "221B Baker Street", "discountCode": "SAVE10"},
        headers=auth,
    )
    assert placed.status_code == 201, placed.text
    order = placed.json()
    assert order["total"] == "1125.00"
    assert order["discountAmount"] == "125.00"
    assert order["status"] == "PENDING"

    assert (await http.get("/api/cart", headers=auth)).json()["items"] == []
    history = (await http.get("/api/orders", headers=auth)).json()
    assert [o["id"] for o in history] == [order["id"]]


async def test_cart_quantity_and_removal(http: httpx.AsyncClient, db: Database):
    auth = bearer((await _sign_in(http))["token"])
    ring = await add_product(db)
    await http.post("/api/cart", json={"productId": ring}, headers=auth)

    bad = await http.put("/api/cart", json={"productId": ring, "quantity": 0}, headers=auth)
    assert bad.status_code == 400

    assert (await http.put("/api/cart", json={"productId": ring, "quantity": 4}, headers=auth)).json() == {
        "success": True
    }
    assert (await http.request("DELETE", "/api/cart", json={"productId": ring}, headers=auth)).json() == {
        "success": True
    }
    missing = await http.request("DELETE", "/api/cart", json={"productId": ring}, headers=auth)
    assert missing.status_code == 404


async def test_empty_cart_checkout_is_400(http: httpx.AsyncClient):
    auth = bearer((await _sign_in(http))["token"])

    response = await http.post("/api/orders", json={"shippingAddress": "Somewhere"}, headers=auth)

    assert response.status_code == 400
    assert response.json() == {"error": "Cart is empty"}


async def test_discount_rejection_carries_reason(http: httpx.AsyncClient, db: Database):
    auth = bearer((await _sign_in(http))["token"])
    await add_code(db, code="GONE", usage_limit=1, used_count=1)

    response = await http.post("/api/discounts", json={"code": "GONE", "cartTotal": 100}, headers=auth)

    assert response.status_code == 400
    assert response.json()["reason"] == "LIMIT_EXCEEDED"


async def test_malformed_body_is_400(http: httpx.AsyncClient):
    auth = bearer((await _sign_in(http))["token"])

    response = await http.post("/api/cart", json={"productId": "ring"}, headers=auth)

    assert response.status_code == 400
    assert "productId" in response.json()["error"]


@pytest.mark.parametrize(
    ("path", "body"),
    [
        ("/api/cart", {"productId": 1, "quantity": 10**20}),
        ("/api/cart", {"productId": -(10**20)}),
        ("/api/reviews", {"productId": 10**20, "rating": 5}),
    ],
)
async def test_out_of_range_integers_are_400(http: httpx.AsyncClient, db: Database, path: str, body: dict):
    await add_product(db)
    auth = bearer((await _sign_in(http))["token"])

    response = await http.post(path, json=body, headers=auth)

    assert response.status_code == 400


async def test_review_gate_over_http(http: httpx.AsyncClient, db: Database):
    session = await _sign_in(http)
    auth = bearer(session["token"])
    product = await add_product(db)
    await http.post("/api/cart", json={"productId": product}, headers=auth)
    await http.post("/api/orders", json={"shippingAddress": "1 Crystal Lane"}, headers=auth)

    early = await http.post("/api/reviews", json={"productId": product, "rating": 5}, headers=auth)
    assert early.status_code == 403
    assert (await http.get("/api/orders", params={"productId": product}, headers=auth)).json() == {
        "hasPurchased": False
    }

    await mark_orders(db, session["user"]["id"], OrderStatus.DELIVERED)
    assert (await http.get("/api/orders", params={"productId": product}, headers=auth)).json() == {
        "hasPurchased": True
    }

    posted = await http.post(
        "/api/reviews", json={"productId": product, "rating": 5, "comment": "Sparkles"}, headers=auth
    )
    assert posted.status_code == 201
    assert posted.json()["user"] == {"name": "Ada", "email": "ada@example.com"}

    twice = await http.post("/api/reviews", json={"productId": product, "rating": 1}, headers=auth)
    assert twice.status_code == 409

    listing = (await http.get("/api/reviews", params={"productId": product})).json()
    assert listing["totalReviews"] == 1
    assert listing["averageRating"] == 5.0


async def test_public_catalog(http: httpx.AsyncClient, db: Database):
    product = await add_product(db, name="Amber Cuff", price="750")

    listing = await http.get("/api/products", params={"q": "amber", "category": "unknown"})
    assert listing.status_code == 200
    assert listing.json()["total"] == 1

    single = await http.get(f"/api/product/{product}")
    assert single.json()["product"]["name"] == "Amber Cuff"
    assert (await http.get("/api/product/999")).status_code == 404
    assert (await http.get("/api/products", params={"tone": "purple"})).status_code == 400


async def test_unknown_route_uses_error_shape(http: httpx.AsyncClient):
    response = await http.get("/api/nowhere")

    assert response.status_code == 404
    assert "error" in response.json()


# ═══════════════════════════════════════════════════════════════════════════════
# Back-office
# ═══════════════════════════════════════════════════════════════════════════════


async def test_admin_login_rejects_bad_password(http: httpx.AsyncClient):
    response = await http.post("/api/admin/login", json={"username": "admin", "password": "wrong"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


async def test_admin_routes_refuse_user_tokens(http: httpx.AsyncClient):
    user_auth = bearer((await _sign_in(http))["token"])

    assert (await http.get("/api/admin/orders")).status_code == 401
    assert (await http.get("/api/admin/orders", headers=user_auth)).status_code == 401
    assert (await http.put("/api/product", json={"name": "X", "price": "1"}, headers=user_auth)).status_code == 401


async def test_admin_product_lifecycle(http: httpx.AsyncClient):
    admin = await _admin(http)

    created = await http.put(
        "/api/product",
        json={"name": "Rose Halo", "price": 1200, "images": [{"src": "/h.jpg", "alt": "halo"}]},
        headers=admin,
    )
    assert created.status_code == 201, created.text
    product = created.json()["product"]
    assert product["price"] == "1200"
    assert product["tone"] == "rose"

    patched = await http.patch(f"/api/product/{product['id']}", json={"subtitle": "Pavé"}, headers=admin)
    assert patched.json()["product"]["subtitle"] == "Pavé"

    deleted = await http.delete(f"/api/product/{product['id']}", headers=admin)
    assert deleted.status_code == 200
    assert (await http.get(f"/api/product/{product['id']}")).status_code == 404


async def test_admin_orders_and_status(http: httpx.AsyncClient, db: Database):
    admin = await _admin(http)
    auth = bearer((await _sign_in(http))["token"])
    product = await add_product(db)
    await http.post("/api/cart", json={"productId": product}, headers=auth)
    order = (await http.post("/api/orders", json={"shippingAddress": "Lane 1"}, headers=auth)).json()

    listing = (await http.get("/api/admin/orders", params={"status": "all"}, headers=admin)).json()
    assert listing["total"] == 1
    assert listing["orders"][0]["user"]["email"] == "ada@example.com"
    assert listing["pagination"] == {"skip": 0, "take": 50}

    shipped = await http.put(
        "/api/admin/orders", json={"orderId": order["id"], "status": "SHIPPED"}, headers=admin
    )
    assert shipped.json()["status"] == "SHIPPED"

    bogus = await http.put("/api/admin/orders", json={"orderId": order["id"], "status": "LOST"}, headers=admin)
    assert bogus.status_code == 400


async def test_admin_discount_management(http: httpx.AsyncClient):
    admin = await _admin(http)

    created = await http.post(
        "/api/admin/discounts",
        json={"code": "spring", "discountType": "PERCENTAGE", "discountValue": 15, "usageLimit": 100},
        headers=admin,
    )
    assert created.status_code == 201, created.text
    code = created.json()
    assert code["code"] == "SPRING"

    duplicate = await http.post(
        "/api/admin/discounts",
        json={"code": "SPRING", "discountType": "FIXED", "discountValue": 5},
        headers=admin,
    )
    assert duplicate.status_code == 409

    updated = await http.put(
        "/api/admin/discounts", json={"id": code["id"], "isActive": False}, headers=admin
    )
    assert updated.json()["isActive"] is False

    listing = (await http.get("/api/admin/discounts", params={"active": "true"}, headers=admin)).json()
    assert listing["total"] == 0

    deleted = await http.delete("/api/admin/discounts", params={"id": code["id"]}, headers=admin)
    assert deleted.status_code == 204
    assert (await http.get("/api/admin/discounts", headers=admin)).json()["total"] == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Mock login
# ═══════════════════════════════════════════════════════════════════════════════


async def test_mock_login_outside_production(http: httpx.AsyncClient, db: Database, tokens: SessionTokens):
    assert (await http.get("/api/mock-login", headers={MOCK_SECRET_HEADER: "let-me-in"})).status_code == 404

    user = await add_user(db)
    assert (await http.get("/api/mock-login")).status_code == 401
    assert (await http.get("/api/mock-login", headers={MOCK_SECRET_HEADER: "nope"})).status_code == 401

    response = await http.get("/api/mock-login", headers={MOCK_SECRET_HEADER: "let-me-in"})
    assert response.status_code == 200
    assert ok(tokens.verify_access(response.json()["token"])) == user


async def test_mock_login_absent_in_production(settings: Settings, db: Database):
    production = settings.model_copy(update={"environment": "production"})
    app = create_app(production, db=db, identity=FakeVerifier())
    await add_user(db)

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://atelier.test") as http:
        response = await http.get("/api/mock-login", headers={MOCK_SECRET_HEADER: "let-me-in"})

    assert response.status_code == 404
