"""Tests for the HTTP API."""
import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import VALID_SIGNATURE, completed_event, paid_session_payload
from vinylmarket.main import create_app
from vinylmarket.security.auth import create_access_token


def bearer(user_id: int, email: str | None = None, roles: list[str] | None = None) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, email=email, roles=roles)}"}


ALICE = bearer(1, "alice@vinyl-shop.com")
BOB = bearer(2, "bob@vinyl-shop.com")
ADMIN = bearer(9, "admin@vinyl-shop.com", roles=["admin"])


@pytest_asyncio.fixture
async def app(settings, session_factory, gateway, notifier):
    # session_factory is requested so the schema and seed rows exist first
    app = create_app(settings, gateway=gateway, notifier=notifier)
    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Vinyl Market"
    assert data["status"] == "operational"


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_metrics_exposed(client):
    response = await client.get("/metrics/")
    assert response.status_code == 200
    assert "vinylmarket_orders_created_total" in response.text


@pytest.mark.asyncio
async def test_create_checkout_session(client, gateway):
    response = await client.post(
        "/api/v1/stripe/create-checkout-session",
        json={
            "items": [{"vinylId": 1, "quantity": 2}, {"vinylId": 2, "quantity": 1}],
            "customerEmail": "buyer@vinyl-shop.com",
        },
        headers=ALICE,
    )

    assert response.status_code == 200
    assert response.json() == {"sessionId": "https://checkout.stripe.com/c/pay/cs_test_1"}
    line_items = gateway.created[0]["line_items"]
    assert sum(item.unit_amount * item.quantity for item in line_items) == 9497


@pytest.mark.asyncio
async def test_checkout_requires_auth(client):
    response = await client.post(
        "/api/v1/stripe/create-checkout-session",
        json={"items": [{"vinylId": 1, "quantity": 1}], "customerEmail": "buyer@vinyl-shop.com"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_checkout_empty_cart(client):
    response = await client.post(
        "/api/v1/stripe/create-checkout-session",
        json={"items": [], "customerEmail": "buyer@vinyl-shop.com"},
        headers=ALICE,
    )
    assert response.status_code == 400
    assert response.json() == {"error": "empty_cart", "message": "No items provided", "details": []}


@pytest.mark.asyncio
async def test_checkout_unknown_vinyl(client):
    response = await client.post(
        "/api/v1/stripe/create-checkout-session",
        json={"items": [{"vinylId": 77, "quantity": 1}], "customerEmail": "buyer@vinyl-shop.com"},
        headers=ALICE,
    )
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_checkout_invalid_quantity(client):
    response = await client.post(
        "/api/v1/stripe/create-checkout-session",
        json={"items": [{"vinylId": 1, "quantity": 0}], "customerEmail": "buyer@vinyl-shop.com"},
        headers=ALICE,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_error"
    assert body["details"][0]["field"] == "items.0.quantity"


@pytest.mark.asyncio
async def test_checkout_gateway_failure(client, gateway):
    gateway.fail_create = True
    response = await client.post(
        "/api/v1/stripe/create-checkout-session",
        json={"items": [{"vinylId": 1, "quantity": 1}], "customerEmail": "buyer@vinyl-shop.com"},
        headers=ALICE,
    )
    assert response.status_code == 500
    assert response.json()["error"] == "gateway_error"


@pytest.mark.asyncio
async def test_webhook_creates_order_and_notifies(app, client, gateway, notifier):
    gateway.add_session(paid_session_payload("cs_test_http"))

    response = await client.post(
        "/api/v1/stripe/webhook",
        content=completed_event("cs_test_http"),
        headers={"stripe-signature": VALID_SIGNATURE, "content-type": "application/json"},
    )
    assert response.status_code == 200
    assert response.json() == {"received": True}

    await app.state.job_queue.join()
    assert [r.session_id for r in notifier.receipts] == ["cs_test_http"]

    order = await client.get("/api/v1/orders/session/cs_test_http", headers=ADMIN)
    assert order.status_code == 200
    data = order.json()
    assert data["total_amount"] == "94.97"
    assert len(data["items"]) == 2


@pytest.mark.asyncio
async def test_webhook_redelivery_acknowledged(client, gateway):
    gateway.add_session(paid_session_payload("cs_test_again"))
    headers = {"stripe-signature": VALID_SIGNATURE}

    first = await client.post("/api/v1/stripe/webhook", content=completed_event("cs_test_again"), headers=headers)
    second = await client.post("/api/v1/stripe/webhook", content=completed_event("cs_test_again"), headers=headers)

    assert first.status_code == 200
    assert second.status_code == 200
    orders = await client.get("/api/v1/orders", headers=ADMIN)
    assert len(orders.json()) == 1


@pytest.mark.asyncio
async def test_webhook_bad_signature(client, gateway):
    gateway.add_session(paid_session_payload("cs_test_forged"))

    response = await client.post(
        "/api/v1/stripe/webhook",
        content=completed_event("cs_test_forged"),
        headers={"stripe-signature": "t=1,v1=forged"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_signature"
    assert response.json()["message"].startswith("Webhook Error:")


@pytest.mark.asyncio
async def test_webhook_missing_signature(client):
    response = await client.post("/api/v1/stripe/webhook", content=completed_event("cs_test_x"))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_processing_failure_is_400(client):
    response = await client.post(
        "/api/v1/stripe/webhook",
        content=completed_event("cs_never_created"),
        headers={"stripe-signature": VALID_SIGNATURE},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "webhook_processing_failed"


@pytest.mark.asyncio
async def test_webhook_unhandled_event(client):
    body = json.dumps({"id": "evt_x", "type": "invoice.paid", "data": {"object": {"id": "in_1"}}})
    response = await client.post(
        "/api/v1/stripe/webhook", content=body, headers={"stripe-signature": VALID_SIGNATURE}
    )
    assert response.status_code == 200
    assert response.json() == {"received": True}


@pytest.mark.asyncio
async def test_review_lifecycle(client):
    created = await client.post(
        "/api/v1/reviews/1", json={"score": 5, "comment": "Essential listening"}, headers=ALICE
    )
    assert created.status_code == 201
    assert created.json() == {"message": "Successfully created vinyl's review"}

    await client.post("/api/v1/reviews/1", json={"score": 4, "comment": "Great pressing quality"}, headers=BOB)

    listing = await client.get("/api/v1/reviews/vinyl/1", headers=ALICE)
    assert listing.status_code == 200
    body = listing.json()
    assert body["total"] == 2
    alice_review = next(r for r in body["data"] if r["user_id"] == 1)

    forbidden = await client.delete(f"/api/v1/reviews/{alice_review['id']}", headers=BOB)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "forbidden"

    deleted = await client.delete(f"/api/v1/reviews/{alice_review['id']}", headers=ALICE)
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Review deleted successfully"}

    missing = await client.delete(f"/api/v1/reviews/{alice_review['id']}", headers=ALICE)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_review_is_400(client):
    payload = {"score": 5, "comment": "Essential listening"}
    await client.post("/api/v1/reviews/2", json=payload, headers=ALICE)

    response = await client.post("/api/v1/reviews/2", json=payload, headers=ALICE)

    assert response.status_code == 400
    assert response.json()["error"] == "duplicate_review"


@pytest.mark.asyncio
async def test_review_validation(client):
    response = await client.post(
        "/api/v1/reviews/1", json={"score": 9, "comment": "short"}, headers=ALICE
    )
    assert response.status_code == 400
    fields = {detail["field"] for detail in response.json()["details"]}
    assert fields == {"score", "comment"}


@pytest.mark.asyncio
async def test_review_requires_auth(client):
    response = await client.post("/api/v1/reviews/1", json={"score": 5, "comment": "Essential listening"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_orders_require_admin(client):
    response = await client.get("/api/v1/orders", headers=ALICE)
    assert response.status_code == 403

    response = await client.get("/api/v1/orders", headers=ADMIN)
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_unknown_order_session(client):
    response = await client.get("/api/v1/orders/session/cs_missing", headers=ADMIN)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_system_logs_admin_only(client, gateway):
    gateway.add_session(paid_session_payload("cs_test_audit"))
    await client.post(
        "/api/v1/stripe/webhook",
        content=completed_event("cs_test_audit"),
        headers={"stripe-signature": VALID_SIGNATURE},
    )
    await client.post("/api/v1/reviews/1", json={"score": 4, "comment": "Great pressing quality"}, headers=BOB)

    forbidden = await client.get("/api/v1/system-logs", headers=ALICE)
    assert forbidden.status_code == 403

    response = await client.get("/api/v1/system-logs", headers=ADMIN)
    assert response.status_code == 200
    body = response.json()
    assert body["page"] == 1
    messages = [log["message"] for log in body["logs"]]
    assert "Order created successfully for session cs_test_audit" in messages
    assert "Average rating for vinyl 1 updated to 4.00" in messages

    errors = await client.get("/api/v1/system-logs", params={"level": "error"}, headers=ADMIN)
    assert errors.json() == {"total": 0, "page": 1, "limit": 50, "logs": []}
