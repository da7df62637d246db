"""
Pizzeria — Health endpoint

503 when PostgreSQL or Redis does not answer within HEALTH_CHECK_TIMEOUT.
The change-feed state is reported but never fails the check: a reconnecting
board serves a stale list, not errors.
"""
import asyncio
from typing import Awaitable, Callable

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from pizzeria.core.config import get_settings
from pizzeria.core.redis_client import get_redis
from pizzeria.db.database import engine

settings = get_settings()
router = APIRouter(tags=["health"])


async def ping_postgres() -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def ping_redis() -> None:
    await get_redis().ping()


DEPENDENCY_CHECKS: dict[str, Callable[[], Awaitable[None]]] = {
    "postgres": ping_postgres,
    "redis": ping_redis,
}


async def _run_check(check: Callable[[], Awaitable[None]]) -> str:
    try:
        await asyncio.wait_for(check(), timeout=settings.HEALTH_CHECK_TIMEOUT)
    except Exception as e:
        return f"error: {str(e)[:100]}"
    return "ok"


@router.get("/health")
async def health_check(request: Request):
    names = list(DEPENDENCY_CHECKS)
    results = await asyncio.gather(*(_run_check(DEPENDENCY_CHECKS[name]) for name in names))
    deps = dict(zip(names, results))
    healthy = all(r == "ok" for r in results)

    board = getattr(request.app.state, "board", None)
    deps["change_feed"] = board.connection.state.value if board is not None else "disabled"

    return JSONResponse(
        content={
            "status": "healthy" if healthy else "degraded",
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "dependencies": deps,
        },
        status_code=200 if healthy else 503,
    )
