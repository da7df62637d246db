"""
Pizzeria — Idempotency Key Middleware

Order creation endpoints accept an Idempotency-Key header (Redis-backed):
  - Cache hit  → return cached response immediately (no order is created)
  - Cache miss → execute handler, store response for IDEMPOTENCY_KEY_TTL_SECONDS
Keys are scoped per caller so two customers cannot replay each other's orders.
"""
import json
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from pizzeria.core.config import get_settings
from pizzeria.core.redis_client import get_redis

settings = get_settings()
logger = logging.getLogger(__name__)

IDEMPOTENCY_PREFIX = "idempotent:"
IDEMPOTENCY_METHODS = {"POST"}
IDEMPOTENCY_PATHS = {"/orders/checkout", "/admin/phone-orders"}


class IdempotencyMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method not in IDEMPOTENCY_METHODS or request.url.path not in IDEMPOTENCY_PATHS:
            return await call_next(request)

        idem_key = request.headers.get("Idempotency-Key")
        if not idem_key:
            return await call_next(request)

        caller = request.headers.get("Authorization", "")[-16:]
        cache_key = f"{IDEMPOTENCY_PREFIX}{request.url.path}:{caller}:{idem_key}"
        redis = get_redis()

        try:
            cached = await redis.get(cache_key)
        except RedisError as exc:
            logger.warning("Idempotency cache unavailable, processing request normally: %s", exc)
            return await call_next(request)

        if cached:
            data = json.loads(cached)
            return JSONResponse(
                content=data["body"],
                status_code=data["status_code"],
                headers={"X-Idempotency-Replay": "true"},
            )

        response = await call_next(request)

        body_bytes = b""
        async for chunk in response.body_iterator:
            body_bytes += chunk

        if response.status_code < 400:
            try:
                body = json.loads(body_bytes)
            except ValueError:
                body = body_bytes.decode("utf-8", errors="replace")
            try:
                await redis.setex(
                    cache_key,
                    settings.IDEMPOTENCY_KEY_TTL_SECONDS,
                    json.dumps({"body": body, "status_code": response.status_code}),
                )
            except RedisError as exc:
                logger.warning("Could not store idempotent response: %s", exc)

        return Response(
            content=body_bytes,
            status_code=response.status_code,
            media_type=response.media_type,
            headers=dict(response.headers),
        )
