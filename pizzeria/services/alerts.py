"""
Pizzeria — Audible alerts for the kitchen / admin dashboards

Dashboards subscribe to the alerts channel and play the named cue.
Alerts are fire-and-forget: nothing upstream waits on or fails because of them.
"""
import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from pizzeria.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

NEW_ORDER_CUE = "new_order"

STATUS_CUES = {
    "pending": "order_pending",
    "confirmed": "order_confirmed",
    "preparing": "order_preparing",
    "ready": "order_ready",
    "delivered": "order_delivered",
    "cancelled": "order_cancelled",
    "completed": "order_completed",
}


def cue_for_status(status) -> str | None:
    return STATUS_CUES.get(getattr(status, "value", status))


class AlertSink:
    def __init__(self, redis: aioredis.Redis, channel: str | None = None):
        self._redis = redis
        self._channel = channel or settings.ALERTS_CHANNEL

    async def play(self, cue: str, order_id: str | None = None, status: str | None = None) -> None:
        payload = {"cue": cue, "order_id": order_id, "status": status}
        try:
            await self._redis.publish(self._channel, json.dumps(payload))
        except RedisError as exc:
            logger.warning("Alert '%s' for order %s not delivered: %s", cue, order_id, exc)

    async def play_status(self, status, order_id: str | None = None) -> None:
        """Play the cue for a recognised status; unknown statuses are silent."""
        cue = cue_for_status(status)
        if cue is None:
            return
        await self.play(cue, order_id=order_id, status=getattr(status, "value", status))
