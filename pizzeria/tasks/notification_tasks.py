"""
Pizzeria — Celery tasks (one-shot order emails)

send_pending_confirmation runs the same dispatcher the API uses, on a
short-lived event loop with its own engine and Redis connection. It is not
retried: confirmation_sent stays false on failure and the next observation
of the pending order enqueues it again.
"""
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from pizzeria.core.config import get_settings
from pizzeria.core.exceptions import OrderNotFound, PersistenceError
from pizzeria.core.redis_client import new_redis
from pizzeria.realtime.change_feed import ChangeFeed
from pizzeria.services.alerts import AlertSink
from pizzeria.services.dispatcher import DispatchOutcome, SideEffectDispatcher
from pizzeria.services.email import BrevoEmailClient
from pizzeria.services.notifications import NotificationService
from pizzeria.services.repository import OrderRepository
from pizzeria.tasks.celery_app import celery_app

settings = get_settings()
logger = logging.getLogger(__name__)


async def run_pending_confirmation(order_id: str, session_factory=None, redis=None, email_client=None) -> DispatchOutcome:
    engine = None
    owns_redis = redis is None
    if session_factory is None:
        # a fresh loop per task; pooled connections cannot outlive it
        engine = create_async_engine(settings.database_url, poolclass=NullPool)

        def session_factory():
            return AsyncSession(engine, expire_on_commit=False)

    redis = redis or new_redis()
    try:
        async with session_factory() as db:
            repo = OrderRepository(db, ChangeFeed(redis))
            dispatcher = SideEffectDispatcher(
                repo, NotificationService(db), email_client or BrevoEmailClient(), AlertSink(redis)
            )
            return await dispatcher.ensure_pending_confirmation(order_id)
    finally:
        if owns_redis:
            await redis.aclose()
        if engine is not None:
            await engine.dispose()


@celery_app.task(name="send_pending_confirmation", acks_late=True)
def send_pending_confirmation(order_id: str) -> dict:
    try:
        outcome = asyncio.run(run_pending_confirmation(order_id))
    except OrderNotFound:
        logger.info("Order %s vanished before its confirmation was sent", order_id)
        return {"order_id": order_id, "emails_sent": [], "warnings": ["order not found"]}
    except PersistenceError:
        logger.exception("Order %s: pending confirmation aborted", order_id)
        raise

    if outcome.warnings:
        logger.warning("Order %s: pending confirmation incomplete: %s", order_id, "; ".join(outcome.warnings))
    return {"order_id": order_id, "emails_sent": outcome.emails_sent, "warnings": outcome.warnings}
