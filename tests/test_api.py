"""
HTTP routes end to end: auth, checkout, addresses, the order board,
the payment webhook, notifications and the phone-order wizard.
"""
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from pizzeria.api import deps, health
from pizzeria.core.security import create_access_token
from pizzeria.db.database import get_db
from pizzeria.main import app
from pizzeria.models import DeliveryMethod, OrderStatus, User, UserRole
from pizzeria.realtime.board import OrderBoard
from pizzeria.schemas.order import OrderLineIn
from pizzeria.services.cart import CartStore
from pizzeria.services.repository import OrderRepository
from tests.conftest import FakePayments

WEBHOOK_HEADERS = {"X-Webhook-Secret": "test-webhook-secret"}


class RecordingScheduler:
    def __init__(self):
        self.orders = []

    async def __call__(self, order):
        self.orders.append(order.id)
        return True


def bearer(user_id: str, email: str, role: str = "customer") -> dict:
    token = create_access_token({"sub": user_id, "email": email, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def api(session_factory, feed, alerts, email, redis, seed):
    async def override_db():
        async with session_factory() as session:
            yield session

    async def load_orders():
        async with session_factory() as session:
            return await OrderRepository(session).list_orders()

    scheduler = RecordingScheduler()
    payments = FakePayments()
    board = OrderBoard(load_orders, feed, alerts)

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[deps.get_feed] = lambda: feed
    app.dependency_overrides[deps.get_alerts] = lambda: alerts
    app.dependency_overrides[deps.get_email_client] = lambda: email
    app.dependency_overrides[deps.get_payment_client] = lambda: payments
    app.dependency_overrides[deps.get_cart_store] = lambda: CartStore(redis)
    app.dependency_overrides[deps.get_confirmation_scheduler] = lambda: scheduler
    app.state.board = board

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        client.scheduler = scheduler
        client.payments = payments
        client.board = board
        client.customer = bearer(seed.customer_id, "marie@example.com")
        client.other = bearer(seed.other_id, "paul@example.com")
        client.admin = bearer(seed.admin_id, "chef@pizzeria.test", role="admin")
        yield client

    await board.stop()
    app.dependency_overrides.clear()
    app.state.board = None


def checkout_body(seed, **overrides):
    body = {
        "delivery_method": "delivery",
        "address_id": seed.address_id,
        "items": [
            {"product_id": seed.pizza_id, "quantity": 1, "size": "medium"},
            {"product_id": seed.drink_id, "quantity": 2},
        ],
    }
    body.update(overrides)
    return body


async def place_order(api, seed) -> dict:
    r = await api.post("/orders/checkout", json=checkout_body(seed), headers=api.customer)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.mark.asyncio
async def test_protected_routes_require_token(api):
    r = await api.get("/orders/mine")
    assert r.status_code == 401

    r = await api.get("/orders/mine", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_root_and_menu_are_public(api, seed):
    r = await api.get("/")
    assert r.status_code == 200

    r = await api.get("/menu")
    assert r.status_code == 200
    menu = r.json()
    assert [c["name"] for c in menu] == ["Pizzas", "Drinks"]
    assert [p["name"] for p in menu[0]["products"]] == ["Margherita"]

    r = await api.get("/menu/toppings")
    assert [t["name"] for t in r.json()] == ["Olives"]


@pytest.mark.asyncio
async def test_checkout_prices_order_and_schedules_confirmation(api, seed):
    order = await place_order(api, seed)

    assert Decimal(order["total_amount"]) == Decimal("17.50")
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert api.scheduler.orders == [order["id"]]

    r = await api.get("/orders/mine", headers=api.customer)
    assert [o["id"] for o in r.json()] == [order["id"]]


@pytest.mark.asyncio
async def test_checkout_from_cart_empties_it(api, seed):
    r = await api.post(
        "/cart/cart-1/items",
        json={"product_id": seed.pizza_id, "quantity": 2, "size": "large", "topping_ids": [seed.topping_id]},
    )
    assert r.status_code == 201
    assert r.json()["total"] == "29.00"

    r = await api.post(
        "/orders/checkout",
        json={"delivery_method": "pickup", "cart_id": "cart-1"},
        headers=api.customer,
    )
    assert r.status_code == 201, r.text
    assert Decimal(r.json()["total_amount"]) == Decimal("29.00")

    r = await api.get("/cart/cart-1")
    assert r.json()["item_count"] == 0


@pytest.mark.asyncio
async def test_checkout_validation(api, seed):
    r = await api.post("/orders/checkout", json=checkout_body(seed, address_id=None), headers=api.customer)
    assert r.status_code == 422

    body = checkout_body(seed, items=[{"product_id": seed.retired_id}])
    r = await api.post("/orders/checkout", json=body, headers=api.customer)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_order_is_private_to_its_owner(api, seed):
    order = await place_order(api, seed)

    r = await api.get(f"/orders/{order['id']}", headers=api.other)
    assert r.status_code == 404

    r = await api.get(f"/orders/{order['id']}", headers=api.customer)
    assert r.status_code == 200
    assert api.scheduler.orders == [order["id"], order["id"]]


@pytest.mark.asyncio
async def test_checkout_session_returns_payment_url(api, seed):
    order = await place_order(api, seed)

    r = await api.post(f"/orders/{order['id']}/checkout-session", headers=api.customer)
    assert r.status_code == 200
    assert r.json()["url"].endswith(order["id"])
    assert api.payments.sessions == [(Decimal("17.50"), order["id"])]


@pytest.mark.asyncio
async def test_payment_webhook(api, seed):
    order = await place_order(api, seed)
    body = {"payment_status": "paid", "stripe_session_id": "cs_test_1"}

    r = await api.post(f"/orders/{order['id']}/payment", json=body, headers={"X-Webhook-Secret": "wrong"})
    assert r.status_code == 401

    r = await api.post(f"/orders/{order['id']}/payment", json=body, headers=WEBHOOK_HEADERS)
    assert r.status_code == 200
    assert r.json()["applied"] == ["confirmed"]
    assert r.json()["order"]["payment_status"] == "paid"


@pytest.mark.asyncio
async def test_default_address_is_exclusive(api, seed):
    r = await api.post(
        "/addresses",
        json={"title": "Work", "street": "2 quai du Port", "city": "Marseille", "postal_code": "13002",
              "is_default": True},
        headers=api.customer,
    )
    assert r.status_code == 201
    work_id = r.json()["id"]

    r = await api.get("/addresses", headers=api.customer)
    listing = r.json()
    defaults = [a["id"] for a in listing["addresses"] if a["is_default"]]
    assert defaults == [work_id]
    assert listing["addresses"][0]["id"] == work_id
    assert listing["selected_address_id"] == work_id

    r = await api.patch(f"/addresses/{seed.address_id}", json={"is_default": True}, headers=api.customer)
    assert r.status_code == 200
    r = await api.get("/addresses", headers=api.customer)
    assert [a["id"] for a in r.json()["addresses"] if a["is_default"]] == [seed.address_id]

    r = await api.patch(f"/addresses/{seed.address_id}", json={"city": "Nice"}, headers=api.other)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_board_status_change_end_to_end(api, seed, email):
    order = await place_order(api, seed)

    r = await api.post(f"/board/orders/{order['id']}/status", json={"status": "preparing"}, headers=api.customer)
    assert r.status_code == 403

    r = await api.post(f"/board/orders/{order['id']}/status", json={"status": "preparing"}, headers=api.admin)
    assert r.status_code == 200, r.text
    result = r.json()
    assert result["applied"] == ["confirmed", "preparing"]
    assert result["emails_sent"] == ["preparing"]
    assert result["order"]["preparing_confirmation_sent"] is True
    assert email.kinds() == ["preparing"]

    assert order["id"] in api.board.in_flight
    r = await api.get("/board/orders", headers=api.admin)
    assert [(o["id"], o["status"]) for o in r.json()] == [(order["id"], "preparing")]


@pytest.mark.asyncio
async def test_board_rejects_unknown_status_and_advances(api, seed):
    order = await place_order(api, seed)

    r = await api.post(f"/board/orders/{order['id']}/status", json={"status": "baking"}, headers=api.admin)
    assert r.status_code == 400

    r = await api.post(f"/board/orders/{order['id']}/advance", headers=api.admin)
    assert r.json()["applied"] == ["confirmed"]

    r = await api.post("/board/orders/missing/advance", headers=api.admin)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_board_refresh_and_connection(api, seed):
    await place_order(api, seed)

    r = await api.post("/board/refresh", headers=api.admin)
    snapshot = r.json()
    assert len(snapshot["orders"]) == 1
    assert snapshot["connection"]["state"] == "disconnected"

    r = await api.get("/board/connection", headers=api.admin)
    assert r.json()["state"] == "disconnected"


@pytest.mark.asyncio
async def test_notification_center(api, seed):
    order = await place_order(api, seed)
    await api.post(f"/board/orders/{order['id']}/status", json={"status": "ready"}, headers=api.admin)

    r = await api.get("/notifications", headers=api.customer)
    feed = r.json()
    assert feed["unread_count"] == 1
    (notification,) = feed["notifications"]
    assert notification["type"] == "order_ready"

    r = await api.post(f"/notifications/{notification['id']}/read", headers=api.other)
    assert r.status_code == 404
    r = await api.post("/notifications/read-all", headers=api.customer)
    assert r.json() == {"updated": 1}
    r = await api.get("/notifications", headers=api.customer)
    assert r.json()["unread_count"] == 0


@pytest.mark.asyncio
async def test_phone_order_wizard(api, seed):
    r = await api.get("/admin/phone-orders/customers", params={"phone": "0611223344"}, headers=api.admin)
    assert r.status_code == 404

    r = await api.post(
        "/admin/phone-orders/customers",
        json={"full_name": "Jean Gabin", "phone": "0611223344"},
        headers=api.admin,
    )
    assert r.status_code == 201
    customer = r.json()
    assert customer["is_phone_order"] is True
    assert customer["email"].startswith("0611223344-")

    r = await api.post(
        f"/admin/phone-orders/customers/{customer['id']}/addresses",
        json={"title": "Home", "street": "5 rue Paradis", "city": "Marseille", "postal_code": "13006"},
        headers=api.admin,
    )
    address_id = r.json()["id"]

    r = await api.post(
        "/admin/phone-orders",
        json={
            "user_id": customer["id"],
            "address_id": address_id,
            "items": [{"product_id": seed.pizza_id, "size": "small", "crust": "stuffed"}],
        },
        headers=api.admin,
    )
    assert r.status_code == 201, r.text
    created = r.json()
    assert Decimal(created["order"]["total_amount"]) == Decimal("14.50")
    assert created["order"]["notes"] == "Phone order"
    assert created["payment_url"].endswith(f"/payment/{created['order']['id']}?amount=14.50")

    r = await api.get("/admin/phone-orders", headers=api.admin)
    assert [o["id"] for o in r.json()] == [created["order"]["id"]]

    r = await api.delete(f"/admin/phone-orders/{created['order']['id']}", headers=api.admin)
    assert r.status_code == 204
    r = await api.get("/admin/phone-orders", headers=api.admin)
    assert r.json() == []


@pytest.mark.asyncio
async def test_admin_catalog_and_stats(api, seed):
    r = await api.post("/admin/toppings", json={"name": "Basil", "price": "0.80"}, headers=api.admin)
    assert r.status_code == 201
    r = await api.patch(f"/admin/toppings/{r.json()['id']}", json={"is_available": False}, headers=api.admin)
    assert r.json()["is_available"] is False

    r = await api.post("/admin/categories", json={"name": "Desserts"}, headers=api.customer)
    assert r.status_code == 403

    r = await api.delete(f"/admin/categories/{seed.category_id}", headers=api.admin)
    assert r.status_code == 409

    order = await place_order(api, seed)
    await api.post(f"/orders/{order['id']}/payment", json={"payment_status": "paid"}, headers=WEBHOOK_HEADERS)

    r = await api.get("/admin/stats", headers=api.admin)
    stats = r.json()
    assert stats["total_orders"] == 1
    assert Decimal(stats["total_revenue"]) == Decimal("17.50")
    assert stats["total_customers"] == 2


@pytest.mark.asyncio
async def test_admin_role_changes(api, session_factory, seed):
    r = await api.patch(f"/admin/users/{seed.other_id}/role", json={"role": "admin"}, headers=api.admin)
    assert r.status_code == 200
    assert r.json()["role"] == "admin"

    async with session_factory() as session:
        owner = User(email="owner@pizzeria.test", role=UserRole.ADMIN)
        session.add(owner)
        await session.commit()
        owner_id = owner.id

    r = await api.patch(f"/admin/users/{owner_id}/role", json={"role": "customer"}, headers=api.admin)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_pending_confirmation_is_enqueued_once(monkeypatch, repo, seed, redis):
    enqueued = []
    monkeypatch.setattr(deps.send_pending_confirmation, "delay", lambda order_id: enqueued.append(order_id))
    scheduler = deps.PendingConfirmationScheduler(redis)
    order = await repo.create_order(seed.customer_id, [OrderLineIn(product_id=seed.drink_id)], DeliveryMethod.PICKUP)

    assert await scheduler(order) is True
    assert await scheduler(order) is False
    assert enqueued == [order.id]

    confirmed = order.model_copy(update={"status": OrderStatus.CONFIRMED, "id": "other"})
    assert await scheduler(confirmed) is False
    assert enqueued == [order.id]


@pytest.mark.asyncio
async def test_health_reports_each_dependency(api, monkeypatch):
    async def ok():
        return None

    async def down():
        raise ConnectionError("connection refused")

    monkeypatch.setattr(health, "DEPENDENCY_CHECKS", {"postgres": ok, "redis": ok})
    r = await api.get("/health")
    assert r.status_code == 200
    assert r.json()["dependencies"] == {"postgres": "ok", "redis": "ok", "change_feed": "disconnected"}

    monkeypatch.setattr(health, "DEPENDENCY_CHECKS", {"postgres": ok, "redis": down})
    r = await api.get("/health")
    assert r.status_code == 503
    assert r.json()["status"] == "degraded"
    assert r.json()["dependencies"]["redis"] == "error: connection refused"


@pytest.mark.asyncio
async def test_redelivered_payment_webhook_keeps_kitchen_progress(api, seed, redis):
    order = await place_order(api, seed)
    body = {"payment_status": "paid", "stripe_session_id": "cs_test_1"}
    await api.post(f"/orders/{order['id']}/payment", json=body, headers=WEBHOOK_HEADERS)
    await api.post(f"/board/orders/{order['id']}/status", json={"status": "preparing"}, headers=api.admin)
    cues_before = len(redis.messages("alerts"))

    r = await api.post(f"/orders/{order['id']}/payment", json=body, headers=WEBHOOK_HEADERS)

    assert r.status_code == 200
    assert r.json()["applied"] == []
    assert r.json()["order"]["status"] == "preparing"
    assert len(redis.messages("alerts")) == cues_before
    r = await api.get(f"/orders/{order['id']}", headers=api.customer)
    assert r.json()["status"] == "preparing"


@pytest.mark.asyncio
async def test_cart_line_over_limit_is_rejected_before_checkout(api, seed):
    line = {"product_id": seed.drink_id, "quantity": 30}
    r = await api.post("/cart/big/items", json=line)
    assert r.status_code == 201

    r = await api.post("/cart/big/items", json=line)
    assert r.status_code == 400
    r = await api.get("/cart/big")
    assert r.json()["item_count"] == 30

    r = await api.post(
        "/orders/checkout", json={"delivery_method": "pickup", "cart_id": "big"}, headers=api.customer
    )
    assert r.status_code == 201, r.text
    assert Decimal(r.json()["total_amount"]) == Decimal("60.00")
