"""
Pizzeria — Change-feed events and order-board snapshots
"""
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel

from pizzeria.schemas.order import OrderRead


class ChangeEvent(BaseModel):
    """One row-level change on a watched table, as pushed over the change feed."""

    table: str
    event_type: Literal["insert", "update", "delete"]
    old: dict[str, Any] | None = None
    new: dict[str, Any] | None = None

    @property
    def row(self) -> dict[str, Any]:
        return self.new or self.old or {}

    def order_id(self) -> str | None:
        """Id of the order this change belongs to."""
        if self.table == "order_items":
            return self.row.get("order_id")
        return self.row.get("id")


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"


class ConnectionStatus(BaseModel):
    state: ConnectionState = ConnectionState.DISCONNECTED
    last_event_at: datetime | None = None
    attempts: int = 0
    last_error: str | None = None

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def reconnecting(self) -> bool:
        return self.state == ConnectionState.RECONNECTING


class BoardSnapshot(BaseModel):
    version: int
    orders: list[OrderRead]
    connection: ConnectionStatus
    last_reload_at: datetime | None = None
    last_reload_error: str | None = None
