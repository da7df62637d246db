"""
Shared fixtures: a throwaway SQLite database per test, an in-memory Redis
stand-in and recording email / payment collaborators.
"""
import asyncio
import json
import os
from decimal import Decimal
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("BOARD_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("SUPER_ADMIN_EMAIL", "owner@pizzeria.test")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from pizzeria.core.exceptions import SideEffectError
from pizzeria.db.database import Base
from pizzeria.models import Address, Category, Product, Topping, User, UserRole
from pizzeria.realtime.change_feed import ChangeFeed
from pizzeria.services.alerts import AlertSink
from pizzeria.services.dispatcher import SideEffectDispatcher
from pizzeria.services.notifications import NotificationService
from pizzeria.services.repository import OrderRepository
from pizzeria.services.transitions import TransitionPolicy


class FakeRedis:
    """The handful of redis.asyncio calls the service makes, kept in memory."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 0

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for k in keys if self.store.pop(k, None) is not None)

    def messages(self, channel: str) -> list[dict]:
        return [json.loads(m) for c, m in self.published if c == channel]


class FakeEmail:
    def __init__(self):
        self.sent = []
        self.fail_kinds: set[str] = set()

    async def send(self, message):
        if message.kind in self.fail_kinds:
            raise SideEffectError(f"Email '{message.kind}' failed with HTTP 500.")
        self.sent.append(message)

    def kinds(self) -> list[str]:
        return [m.kind for m in self.sent]


class FakePayments:
    def __init__(self):
        self.sessions = []

    async def create_checkout_session(self, amount, order_id):
        self.sessions.append((amount, order_id))
        return f"https://pay.test/session/{order_id}"


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pizzeria.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis():
    return FakeRedis()


@pytest.fixture
def email():
    return FakeEmail()


@pytest.fixture
def feed(redis):
    return ChangeFeed(redis, prefix="changes")


@pytest.fixture
def alerts(redis):
    return AlertSink(redis, channel="alerts")


@pytest.fixture
def repo(db, feed):
    return OrderRepository(db, feed)


@pytest.fixture
def dispatcher(db, repo, email, alerts):
    return SideEffectDispatcher(repo, NotificationService(db), email, alerts)


@pytest.fixture
def policy(repo, dispatcher):
    return TransitionPolicy(repo, dispatcher)


@pytest_asyncio.fixture
async def seed(session_factory):
    """Two customers, an admin, an address and a small menu."""
    async with session_factory() as session:
        customer = User(email="marie@example.com", full_name="Marie Curie", phone="0600000001")
        other = User(email="paul@example.com", full_name="Paul Valery", phone="0600000002")
        admin = User(email="chef@pizzeria.test", full_name="Chef", role=UserRole.ADMIN)
        session.add_all([customer, other, admin])
        await session.flush()

        address = Address(
            user_id=customer.id, title="Home", street="1 rue de la Paix",
            city="Marseille", postal_code="13001", is_default=True,
        )
        pizzas = Category(name="Pizzas", display_order=1)
        drinks = Category(name="Drinks", display_order=2)
        session.add_all([address, pizzas, drinks])
        await session.flush()

        margherita = Product(category_id=pizzas.id, name="Margherita", base_price=Decimal("10.00"), is_pizza=True)
        cola = Product(category_id=drinks.id, name="Cola", base_price=Decimal("2.00"), is_pizza=False)
        retired = Product(category_id=pizzas.id, name="Hawaii", base_price=Decimal("11.00"), is_pizza=True,
                          is_available=False)
        olives = Topping(name="Olives", price=Decimal("1.50"))
        session.add_all([margherita, cola, retired, olives])
        await session.commit()

        return SimpleNamespace(
            customer_id=customer.id,
            other_id=other.id,
            admin_id=admin.id,
            address_id=address.id,
            pizza_id=margherita.id,
            drink_id=cola.id,
            retired_id=retired.id,
            topping_id=olives.id,
            category_id=pizzas.id,
        )
