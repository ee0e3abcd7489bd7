import json
import os

import httpx
import pytest
from fastapi import status

from app import app
from config import get_settings

pytestmark = pytest.mark.asyncio

DELIVERY_FORM = {
    "clientName": "Budi",
    "clientContact": "08123456789",
    "clientEmail": "budi@example.com",
    "clientAddress": "Jl. Merdeka 1",
    "clientBuilding": "Tower A",
    "clientFloor": "7",
}


async def test_health(client: httpx.AsyncClient):
    response = await client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["orders_count"] == 0
    assert response.headers["X-Frame-Options"] == "DENY"


async def test_user_cookie_is_issued(client: httpx.AsyncClient):
    response = await client.get("/api/cart")
    assert "userId" in response.cookies
    assert response.json() == []


async def test_menu_endpoints(client: httpx.AsyncClient):
    menus = (await client.get("/api/menu")).json()
    assert [item["id"] for item in menus["home"]] == ["h1", "h2"]

    response = await client.get("/api/menu/yummy")
    assert response.json() == {"menu": menus["yummy"]}


async def test_cart_flow(client: httpx.AsyncClient):
    response = await client.post("/api/cart", json={"userId": "u1", "itemId": "h1", "quantity": 2})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()[0]["quantity"] == 2

    response = await client.put("/api/cart/h1", json={"userId": "u1", "quantity": 5})
    assert response.json()[0]["quantity"] == 5

    response = await client.get("/api/cart", params={"userId": "u1"})
    assert [line["itemId"] for line in response.json()] == ["h1"]

    response = await client.delete("/api/cart/h1", params={"userId": "u1"})
    assert response.json() == []

    await client.post("/api/cart", json={"userId": "u1", "itemId": "h2", "quantity": 1})
    response = await client.post("/api/cart/clear", json={"userId": "u1"})
    assert response.json() == {"message": "Cart cleared"}
    assert (await client.get("/api/cart", params={"userId": "u1"})).json() == []


async def test_cart_errors_map_to_400(client: httpx.AsyncClient):
    response = await client.post("/api/cart", json={"userId": "u1", "itemId": "h1", "quantity": 51})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Invalid quantity"}

    response = await client.post("/api/cart", json={"userId": "u1", "itemId": "nope", "quantity": 1})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Invalid item ID"}


async def test_checkout_from_cart_then_attach_details(client: httpx.AsyncClient, settings):
    await client.post("/api/cart", json={"userId": "u1", "itemId": "h1", "quantity": 2})

    response = await client.post("/orders/from-cart", json={"userId": "u1"})
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["total"] == 20000
    order_id = body["orderId"]

    response = await client.post(
        f"/orders/{order_id}/details",
        data=dict(DELIVERY_FORM, userId="u1"),
        files={"paymentImage": ("proof.png", b"\x89PNG fake", "image/png")},
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"message": "Order details attached", "orderId": order_id}

    orders = (await client.get("/admin/orders")).json()
    assert orders[0]["clientName"] == "Budi"
    assert orders[0]["paymentImage"].startswith("/uploads/")
    assert len(os.listdir(settings.uploads_dir)) == 1


async def test_checkout_with_empty_cart(client: httpx.AsyncClient):
    response = await client.post("/orders/from-cart", json={"userId": "nobody"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Cart is empty"}


async def test_attach_details_unknown_order(client: httpx.AsyncClient, settings):
    response = await client.post(
        "/orders/missing/details",
        data=DELIVERY_FORM,
        files={"paymentImage": ("proof.png", b"data", "image/png")},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert not os.path.exists(settings.uploads_dir)


async def test_attach_details_missing_field_keeps_no_upload(client: httpx.AsyncClient, settings):
    await client.post("/api/cart", json={"userId": "u1", "itemId": "h1", "quantity": 1})
    order_id = (await client.post("/orders/from-cart", json={"userId": "u1"})).json()["orderId"]

    form = {k: v for k, v in DELIVERY_FORM.items() if k != "clientFloor"}
    response = await client.post(
        f"/orders/{order_id}/details",
        data=form,
        files={"paymentImage": ("proof.png", b"data", "image/png")},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Missing required field: clientFloor"}
    assert not os.path.exists(settings.uploads_dir)


async def test_submit_order_form(client: httpx.AsyncClient):
    items = [{"itemId": "h1", "name": "Nasi Goreng", "price": 10000, "quantity": 2}]
    form = dict(DELIVERY_FORM, userId="u1", items=json.dumps(items))

    response = await client.post("/orders/submit", data=dict(form, total="19000"))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "Total mismatch" in response.json()["error"]

    response = await client.post("/orders/submit", data=dict(form, total="20000"))
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["total"] == 20000


async def test_submit_order_missing_field(client: httpx.AsyncClient):
    response = await client.post("/orders/submit", data={"userId": "u1"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Missing required field: items"}


async def test_rejected_submission_keeps_no_upload(client: httpx.AsyncClient, settings):
    items = [{"itemId": "h1", "name": "Nasi Goreng", "price": 10000, "quantity": 2}]
    form = dict(DELIVERY_FORM, userId="u1", items=json.dumps(items), total="19000")

    response = await client.post(
        "/orders/submit",
        data=form,
        files={"paymentImage": ("proof.png", b"data", "image/png")},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert os.listdir(settings.uploads_dir) == []


async def test_update_status(client: httpx.AsyncClient):
    await client.post("/api/cart", json={"userId": "u1", "itemId": "y1", "quantity": 1})
    order_id = (await client.post("/orders/from-cart", json={"userId": "u1"})).json()["orderId"]

    response = await client.patch(f"/orders/{order_id}/status", json={"status": "shipped"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = await client.patch(f"/orders/{order_id}/status", json={"status": "confirmed"})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["order"]["status"] == "confirmed"

    response = await client.patch("/orders/missing/status", json={"status": "confirmed"})
    assert response.status_code == status.HTTP_404_NOT_FOUND

    stats = (await client.get("/admin/dashboard")).json()["stats"]
    assert stats["totalOrders"] == 1
    assert stats["pendingOrders"] == 0


async def test_vendor_menu_maintenance(client: httpx.AsyncClient, settings):
    response = await client.post(
        "/vendor/menu/special",
        data={"id": "s1", "name": "Sate", "price": "20000", "description": "Skewers"},
        files={"image": ("sate.jpg", b"jpeg", "image/jpeg")},
    )
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["item"]["image"].startswith("/images/")

    response = await client.put(
        "/vendor/menu/special/0",
        data={"id": "s1", "name": "Sate Ayam", "price": "22000", "description": "Chicken skewers"},
    )
    assert response.json()["item"]["name"] == "Sate Ayam"
    assert response.json()["item"]["image"].startswith("/images/")

    items = (await client.get("/vendor/menu/special")).json()
    assert [item["id"] for item in items] == ["s1"]

    response = await client.delete("/vendor/menu/special/5")
    assert response.status_code == status.HTTP_404_NOT_FOUND

    response = await client.delete("/vendor/menu/special/0")
    assert response.json()["item"]["id"] == "s1"

    assert "special" in (await client.get("/vendor/categories")).json()


async def test_vendor_rejects_bad_price(client: httpx.AsyncClient):
    response = await client.post(
        "/vendor/menu/special",
        data={"id": "s1", "name": "Sate", "price": "-5", "description": "Skewers"},
        files={"image": ("sate.jpg", b"jpeg", "image/jpeg")},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"].startswith("price")


async def test_vendor_requires_image(client: httpx.AsyncClient):
    response = await client.post(
        "/vendor/menu/special",
        data={"id": "s1", "name": "Sate", "price": "1", "description": "Skewers"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Missing required field: image"}


async def test_reserved_category_is_rejected(client: httpx.AsyncClient):
    response = await client.get("/vendor/menu/orders")
    assert response.status_code == status.HTTP_400_BAD_REQUEST


async def test_catalogs_default_to_empty(client: httpx.AsyncClient, store):
    assert (await client.get("/api/products")).json() == []
    store.write("users.json", [{"name": "admin"}])
    assert (await client.get("/api/users")).json() == [{"name": "admin"}]


async def test_debug_cart_state(client: httpx.AsyncClient, store):
    body = (await client.get("/debug/cart-state")).json()
    assert body["exists"] is True
    assert body["parsed"] == {}

    os.remove(store.path("cart.json"))
    response = await client.get("/debug/cart-state")
    assert response.json()["exists"] is False


async def test_storage_failure_maps_to_500(client: httpx.AsyncClient, store):
    store.write("orders.json", {"broken": True})
    response = await client.get("/admin/orders")
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert "error" in response.json()


async def test_infinite_total_is_rejected(client: httpx.AsyncClient, store):
    items = [{"itemId": "h1", "name": "Nasi Goreng", "price": 10000, "quantity": 1e308}]
    form = dict(DELIVERY_FORM, userId="u1", items=json.dumps(items), total="inf")

    response = await client.post("/orders/submit", data=form)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert (await client.get("/admin/orders")).json() == []


@pytest.mark.parametrize(
    "method, url, body, error",
    [
        ("POST", "/api/cart", {"userId": "u1", "itemId": "h1"}, "quantity: Field required"),
        ("PUT", "/api/cart/h1", {"userId": "u1"}, "quantity: Field required"),
        ("PATCH", "/orders/abc/status", {}, "status: Field required"),
    ],
)
async def test_malformed_body_is_a_400(client: httpx.AsyncClient, method, url, body, error):
    response = await client.request(method, url, json=body)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": error}


async def test_fractional_quantity_is_a_400(client: httpx.AsyncClient):
    response = await client.post("/api/cart", json={"userId": "u1", "itemId": "h1", "quantity": 1.5})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"].startswith("quantity: ")


async def test_startup_converts_legacy_cart(settings, store):
    store.write("cart.json", [{"itemId": "h1", "quantity": 1}])
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        async with app.router.lifespan_context(app):
            assert store.read("cart.json") == {}
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
                response = await ac.get("/api/cart", params={"userId": "u1"})
                assert response.status_code == status.HTTP_200_OK
                assert response.json() == []
    finally:
        app.dependency_overrides.clear()
