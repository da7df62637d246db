"""
Pizzeria — FastAPI dependencies

Collaborators are built per request from the process-wide Redis client and
DB session; the order board is owned by the application (app.state.board).
Tests swap any of these through app.dependency_overrides.
"""
import logging

from fastapi import Depends, HTTPException, Request, status
from kombu.exceptions import OperationalError
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.core.config import get_settings
from pizzeria.core.redis_client import get_redis
from pizzeria.core.security import is_admin_claims
from pizzeria.db.database import get_db
from pizzeria.models import OrderStatus, User, UserRole
from pizzeria.realtime.board import OrderBoard
from pizzeria.realtime.change_feed import ChangeFeed
from pizzeria.schemas.order import OrderRead
from pizzeria.services.alerts import AlertSink
from pizzeria.services.cart import CartStore
from pizzeria.services.dispatcher import SideEffectDispatcher
from pizzeria.services.email import BrevoEmailClient
from pizzeria.services.notifications import NotificationService
from pizzeria.services.payments import PaymentClient
from pizzeria.services.repository import OrderRepository
from pizzeria.services.transitions import TransitionPolicy
from pizzeria.tasks.notification_tasks import send_pending_confirmation

settings = get_settings()
logger = logging.getLogger(__name__)

PENDING_CONFIRMATION_KEY = "pending-confirmation:{order_id}"


# ── Collaborators ─────────────────────────────────────────────────────────────

def get_feed() -> ChangeFeed:
    return ChangeFeed(get_redis())


def get_alerts() -> AlertSink:
    return AlertSink(get_redis())


def get_email_client() -> BrevoEmailClient:
    return BrevoEmailClient()


def get_payment_client() -> PaymentClient:
    return PaymentClient()


def get_cart_store() -> CartStore:
    return CartStore(get_redis())


def get_repository(
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_feed),
) -> OrderRepository:
    return OrderRepository(db, feed)


def get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


def get_dispatcher(
    repo: OrderRepository = Depends(get_repository),
    notifications: NotificationService = Depends(get_notification_service),
    email_client=Depends(get_email_client),
    alerts: AlertSink = Depends(get_alerts),
) -> SideEffectDispatcher:
    return SideEffectDispatcher(repo, notifications, email_client, alerts)


def get_policy(
    repo: OrderRepository = Depends(get_repository),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> TransitionPolicy:
    return TransitionPolicy(repo, dispatcher)


def get_board(request: Request) -> OrderBoard:
    board = getattr(request.app.state, "board", None)
    if board is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Order board is not running.")
    return board


# ── Pending confirmation ──────────────────────────────────────────────────────

class PendingConfirmationScheduler:
    """
    Enqueue the "order received" email pair for a pending order at most once
    per lock window. The worker re-checks confirmation_sent before sending.
    """

    def __init__(self, redis=None):
        self._redis = redis or get_redis()

    async def __call__(self, order: OrderRead) -> bool:
        if order.status != OrderStatus.PENDING or order.confirmation_sent:
            return False
        key = PENDING_CONFIRMATION_KEY.format(order_id=order.id)
        try:
            claimed = await self._redis.set(key, "1", nx=True, ex=settings.PENDING_CONFIRMATION_LOCK_SECONDS)
        except RedisError as exc:
            logger.warning("Order %s: pending confirmation not scheduled: %s", order.id, exc)
            return False
        if not claimed:
            return False
        try:
            send_pending_confirmation.delay(order.id)
        except OperationalError as exc:
            logger.warning("Order %s: broker unavailable, pending confirmation not enqueued: %s", order.id, exc)
            await self._redis.delete(key)
            return False
        logger.info("Order %s: pending confirmation enqueued", order.id)
        return True


def get_confirmation_scheduler() -> PendingConfirmationScheduler:
    return PendingConfirmationScheduler()


# ── Identity ──────────────────────────────────────────────────────────────────

async def current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    claims = getattr(request.state, "user", None)
    if not claims:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated.")
    user = await db.get(User, claims["sub"])
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user.")
    return user


async def require_admin(request: Request, user: User = Depends(current_user)) -> User:
    claims = getattr(request.state, "user", {}) or {}
    if user.role == UserRole.ADMIN or is_admin_claims({**claims, "email": user.email}):
        return user
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required.")
