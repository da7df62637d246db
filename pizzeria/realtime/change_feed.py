"""
Pizzeria — Row-level change feed over Redis pub/sub

Architecture:
  - Every committed write to a watched table publishes a ChangeEvent to
    channel `<prefix>:<table>` (API process, Celery workers, webhooks alike)
  - Subscribers (the order board) receive every event, including echoes
    of their own writes, and decide what to do with them
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from pizzeria.core.config import get_settings
from pizzeria.schemas.board import ChangeEvent

settings = get_settings()
logger = logging.getLogger(__name__)


class ChangeFeed:
    def __init__(self, redis: aioredis.Redis, prefix: str | None = None):
        self._redis = redis
        self._prefix = prefix or settings.CHANGE_FEED_PREFIX

    def channel(self, table: str) -> str:
        return f"{self._prefix}:{table}"

    async def publish(self, event: ChangeEvent) -> None:
        """Publish one change. Failures are logged, never raised: the write already happened."""
        try:
            await self._redis.publish(self.channel(event.table), event.model_dump_json())
        except RedisError as exc:
            logger.warning("Change feed publish failed for %s/%s: %s", event.table, event.event_type, exc)

    @asynccontextmanager
    async def subscribe(self, tables: Iterable[str]) -> AsyncIterator[AsyncIterator[ChangeEvent]]:
        """
        Subscribe to the given tables. Connection errors propagate out of the
        returned iterator so the caller can resubscribe.
        """
        channels = [self.channel(t) for t in tables]
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(*channels)
        try:
            yield self._iterate(pubsub)
        finally:
            try:
                await pubsub.unsubscribe(*channels)
            except RedisError as exc:
                logger.debug("Unsubscribe failed (connection already gone): %s", exc)
            await pubsub.aclose()

    async def _iterate(self, pubsub) -> AsyncIterator[ChangeEvent]:
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if not message or message["type"] != "message":
                continue
            try:
                yield ChangeEvent.model_validate_json(message["data"])
            except ValidationError:
                logger.warning("Dropping malformed change event on %s", message.get("channel"))


def row_snapshot(order) -> dict:
    """JSON-safe view of an orders row for change events."""
    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": getattr(order.status, "value", order.status),
        "payment_status": getattr(order.payment_status, "value", order.payment_status),
        "delivery_method": getattr(order.delivery_method, "value", order.delivery_method),
        "total_amount": str(order.total_amount),
        "confirmation_sent": order.confirmation_sent,
        "preparing_confirmation_sent": order.preparing_confirmation_sent,
        "ready_confirmation_sent": order.ready_confirmation_sent,
        "delivered_confirmation_sent": order.delivered_confirmation_sent,
    }


def item_snapshot(item) -> dict:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "product_id": item.product_id,
        "quantity": item.quantity,
        "total_price": str(item.total_price),
    }
