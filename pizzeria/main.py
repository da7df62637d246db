"""
Pizzeria — FastAPI application entrypoint
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from pizzeria.api import addresses, admin, board, cart, health, menu, notifications, orders, phone_orders
from pizzeria.core.config import get_settings
from pizzeria.core.exceptions import (
    InvalidRequest,
    OrderNotFound,
    PersistenceError,
    SideEffectError,
)
from pizzeria.core.redis_client import close_redis, get_redis
from pizzeria.db.database import AsyncSessionLocal, Base, engine
from pizzeria.middleware.auth import JWTAuthMiddleware
from pizzeria.middleware.idempotency import IdempotencyMiddleware
from pizzeria.realtime.board import OrderBoard
from pizzeria.realtime.change_feed import ChangeFeed
from pizzeria.services.alerts import AlertSink
from pizzeria.services.repository import OrderRepository

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def load_board_orders():
    async with AsyncSessionLocal() as db:
        return await OrderRepository(db).list_orders()


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.board = None
    if settings.BOARD_ENABLED:
        redis = get_redis()
        app.state.board = OrderBoard(load_board_orders, ChangeFeed(redis), AlertSink(redis))
        await app.state.board.start()

    yield

    if app.state.board is not None:
        await app.state.board.stop()
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="Pizzeria Orders",
    description="Menu, checkout, payment and the realtime kitchen order board.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Added last runs first: Auth wraps Idempotency, so only authenticated requests are replayed
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(JWTAuthMiddleware)

if settings.METRICS_ENABLED:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")


# ── Error translation ─────────────────────────────────────────────────────────

@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(OrderNotFound)
async def order_not_found_handler(request: Request, exc: OrderNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable, please retry."})


@app.exception_handler(SideEffectError)
async def side_effect_error_handler(request: Request, exc: SideEffectError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


app.include_router(menu.router)
app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(addresses.router)
app.include_router(notifications.router)
app.include_router(board.router)
app.include_router(phone_orders.router)
app.include_router(admin.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION}
