"""
Pizzeria — Order board API (kitchen / admin dashboards)

Architecture:
  - The board keeps the reconciled order list in memory (see realtime.board)
  - Status changes made here go through board.run_local so their own change
    feed echoes do not trigger a second reload or alert
  - /board/stream is an SSE endpoint pushing a snapshot after every reload
"""
import asyncio
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from pizzeria.api.deps import get_board, get_policy, require_admin
from pizzeria.core.config import get_settings
from pizzeria.realtime.board import OrderBoard
from pizzeria.schemas.board import BoardSnapshot, ConnectionStatus
from pizzeria.schemas.order import OrderRead, StatusUpdateRequest, TransitionResult
from pizzeria.services.transitions import TERMINAL_STATUSES, TransitionPolicy

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/board", tags=["board"], dependencies=[Depends(require_admin)])


@router.get("/orders", response_model=list[OrderRead])
async def board_orders(active: bool = False, status: str | None = None, board: OrderBoard = Depends(get_board)):
    """Last reconciled list. `active` keeps only orders the kitchen still has to handle."""
    orders = board.orders
    if active:
        orders = [o for o in orders if o.status not in TERMINAL_STATUSES]
    if status:
        orders = [o for o in orders if o.status.value == status]
    return orders


@router.get("/connection", response_model=ConnectionStatus)
async def board_connection(board: OrderBoard = Depends(get_board)):
    return board.connection


@router.post("/refresh", response_model=BoardSnapshot)
async def board_refresh(board: OrderBoard = Depends(get_board)):
    return await board.refresh()


@router.post("/orders/{order_id}/status", response_model=TransitionResult)
async def set_order_status(
    order_id: str,
    payload: StatusUpdateRequest,
    board: OrderBoard = Depends(get_board),
    policy: TransitionPolicy = Depends(get_policy),
):
    return await board.run_local(order_id, lambda: policy.request_transition(order_id, payload.status))


@router.post("/orders/{order_id}/advance", response_model=TransitionResult)
async def advance_order(
    order_id: str,
    board: OrderBoard = Depends(get_board),
    policy: TransitionPolicy = Depends(get_policy),
):
    """Kitchen button: move the order one step along the kitchen flow."""
    return await board.run_local(order_id, lambda: policy.advance(order_id))


async def _sse_generator(board: OrderBoard, request: Request) -> AsyncGenerator[str, None]:
    async with board.watch() as queue:
        yield f"retry: {settings.SSE_RETRY_MILLISECONDS}\n\n"
        yield f"event: snapshot\ndata: {board.snapshot().model_dump_json()}\n\n"

        while True:
            if await request.is_disconnected():
                break
            try:
                snapshot = await asyncio.wait_for(queue.get(), timeout=settings.SSE_KEEPALIVE_INTERVAL_SECONDS)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield f"event: snapshot\ndata: {snapshot.model_dump_json()}\n\n"


@router.get("/stream")
async def board_stream(request: Request, board: OrderBoard = Depends(get_board)):
    return StreamingResponse(
        _sse_generator(board, request),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable Nginx buffering
            "Connection": "keep-alive",
        },
    )
