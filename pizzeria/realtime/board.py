"""
Pizzeria — Order board (kitchen / admin order list)

Keeps an in-memory order list consistent with the database from two inputs:
  - local actions (status changes made through this process), wrapped in
    run_local(): the order id is marked in-flight so the change feed echo of
    our own write is ignored, and the list is reloaded after the write
  - external change events (other admin sessions, webhooks, workers) from the
    change feed: every relevant event triggers a full reload

Reloads are single-flight: requests arriving while a reload runs are
collapsed into one trailing reload. Out-of-order events are harmless since
the list is always re-fetched in full.

Connection lifecycle:
  subscribe ok      → CONNECTED (and reload, to catch up on missed events)
  error / close     → RECONNECTING, resubscribe after
                      min(base × factor^attempt, max), forever
  stop()            → DISCONNECTED
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable

from pizzeria.core.config import Settings, get_settings
from pizzeria.core.exceptions import ChangeFeedError
from pizzeria.realtime.change_feed import ChangeFeed
from pizzeria.schemas.board import (
    BoardSnapshot,
    ChangeEvent,
    ConnectionState,
    ConnectionStatus,
)
from pizzeria.schemas.order import OrderRead
from pizzeria.services.alerts import NEW_ORDER_CUE, AlertSink, cue_for_status

settings = get_settings()
logger = logging.getLogger(__name__)

WATCHED_TABLES = ("orders", "order_items")
WATCHER_QUEUE_SIZE = 8

OrderLoader = Callable[[], Awaitable[list[OrderRead]]]


def retry_delay(attempt: int, base: float, factor: float, maximum: float) -> float:
    """Delay before resubscription number `attempt` (0-based)."""
    return min(base * (factor ** attempt), maximum)


class OrderBoard:
    def __init__(
        self,
        loader: OrderLoader,
        feed: ChangeFeed,
        alerts: AlertSink,
        cfg: Settings | None = None,
        tables: Iterable[str] = WATCHED_TABLES,
    ):
        cfg = cfg or settings
        self._loader = loader
        self._feed = feed
        self._alerts = alerts
        self._tables = tuple(tables)

        self.cooldown = cfg.ORDER_IN_FLIGHT_COOLDOWN_SECONDS
        self.retry_base = cfg.REALTIME_RETRY_DELAY_SECONDS
        self.backoff_factor = cfg.REALTIME_BACKOFF_FACTOR
        self.max_retry_delay = cfg.REALTIME_MAX_RETRY_DELAY_SECONDS
        self.refresh_interval = cfg.BOARD_REFRESH_INTERVAL_SECONDS

        self.orders: list[OrderRead] = []
        self.version = 0
        self.connection = ConnectionStatus()
        self.last_reload_at: datetime | None = None
        self.last_reload_error: str | None = None

        self._in_flight: dict[str, int] = {}
        self._release_handles: set[asyncio.TimerHandle] = set()

        self._reload_lock = asyncio.Lock()
        self._reload_generation = 0
        self._completed_generation = 0
        self._reload_tasks: set[asyncio.Task] = set()

        self._listener: asyncio.Task | None = None
        self._poller: asyncio.Task | None = None
        self._watchers: set[asyncio.Queue] = set()

    # ── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._listener is not None and not self._listener.done()

    async def start(self) -> None:
        if self.running:
            return
        self._listener = asyncio.create_task(self._listen(), name="order-board-listener")
        self._poller = asyncio.create_task(self._poll(), name="order-board-poller")
        logger.info("Order board started (tables: %s)", ", ".join(self._tables))

    async def stop(self) -> None:
        tasks = [t for t in (self._listener, self._poller, *self._reload_tasks) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._listener = self._poller = None
        self._reload_tasks.clear()

        for handle in self._release_handles:
            handle.cancel()
        self._release_handles.clear()
        self._in_flight.clear()

        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Order board stopped")

    # ── In-flight bookkeeping ────────────────────────────────────────────────

    @property
    def in_flight(self) -> frozenset[str]:
        return frozenset(self._in_flight)

    async def run_local(self, order_id: str, action: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run a local mutation of `order_id`. Its change-feed echoes are ignored
        until `cooldown` seconds after the action finishes, whether it
        succeeded or not; the list is reloaded either way.
        """
        self._claim(order_id)
        try:
            return await action()
        finally:
            self._schedule_release(order_id)
            await self.reload()

    def _claim(self, order_id: str) -> None:
        self._in_flight[order_id] = self._in_flight.get(order_id, 0) + 1

    def _release(self, order_id: str) -> None:
        remaining = self._in_flight.get(order_id, 0) - 1
        if remaining > 0:
            self._in_flight[order_id] = remaining
        else:
            self._in_flight.pop(order_id, None)

    def _schedule_release(self, order_id: str) -> None:
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def release():
            self._release_handles.discard(handle)
            self._release(order_id)

        handle = loop.call_later(self.cooldown, release)
        self._release_handles.add(handle)

    # ── Change events ────────────────────────────────────────────────────────

    async def handle_event(self, event: ChangeEvent) -> bool:
        """React to one change event. Returns True when a reload was requested."""
        self.connection.last_event_at = datetime.now(timezone.utc)

        order_id = event.order_id()
        if not order_id:
            return False
        if order_id in self._in_flight:
            logger.debug("Ignoring echo of local write on order %s", order_id)
            return False

        if event.table == "orders":
            if event.event_type == "insert":
                await self._alerts.play(NEW_ORDER_CUE, order_id=order_id)
            elif event.event_type == "update":
                old_status = (event.old or {}).get("status")
                new_status = (event.new or {}).get("status")
                if new_status != old_status and cue_for_status(new_status):
                    await self._alerts.play_status(new_status, order_id=order_id)

        self.request_reload()
        return True

    # ── Reload ───────────────────────────────────────────────────────────────

    def request_reload(self) -> asyncio.Task:
        """Schedule a reload without waiting for it."""
        task = asyncio.create_task(self.reload())
        self._reload_tasks.add(task)
        task.add_done_callback(self._reload_tasks.discard)
        return task

    async def reload(self) -> None:
        """
        Re-fetch the full order list. Callers that queue up behind a running
        reload share one trailing reload. A failed reload keeps the last
        known list and records the error.
        """
        self._reload_generation += 1
        wanted = self._reload_generation
        async with self._reload_lock:
            if self._completed_generation >= wanted:
                return
            covers = self._reload_generation
            try:
                orders = await self._loader()
            except Exception as exc:
                logger.exception("Order board reload failed")
                self.last_reload_error = str(exc)
            else:
                self.orders = orders
                self.version += 1
                self.last_reload_at = datetime.now(timezone.utc)
                self.last_reload_error = None
                self._broadcast()
            finally:
                self._completed_generation = covers

    async def refresh(self) -> BoardSnapshot:
        """Explicit reload, e.g. when a dashboard regains focus."""
        await self.reload()
        return self.snapshot()

    async def settle(self) -> None:
        """Wait for every scheduled reload to finish."""
        while self._reload_tasks:
            await asyncio.gather(*list(self._reload_tasks), return_exceptions=True)

    # ── Snapshots / watchers ─────────────────────────────────────────────────

    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(
            version=self.version,
            orders=self.orders,
            connection=self.connection.model_copy(),
            last_reload_at=self.last_reload_at,
            last_reload_error=self.last_reload_error,
        )

    def get(self, order_id: str) -> OrderRead | None:
        return next((o for o in self.orders if o.id == order_id), None)

    @asynccontextmanager
    async def watch(self) -> AsyncIterator[asyncio.Queue]:
        """Queue receiving a BoardSnapshot after every successful reload."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=WATCHER_QUEUE_SIZE)
        self._watchers.add(queue)
        try:
            yield queue
        finally:
            self._watchers.discard(queue)

    def _broadcast(self) -> None:
        if not self._watchers:
            return
        snapshot = self.snapshot()
        for queue in self._watchers:
            if queue.full():
                # slow consumer: keep only the newest snapshots
                queue.get_nowait()
            queue.put_nowait(snapshot)

    # ── Background loops ─────────────────────────────────────────────────────

    def _set_state(self, state: ConnectionState, error: str | None = None, attempts: int = 0) -> None:
        previous = self.connection.state
        self.connection.state = state
        self.connection.attempts = attempts
        self.connection.last_error = error
        if previous != state:
            logger.info("Change feed %s → %s", previous.value, state.value)

    async def _listen(self) -> None:
        attempt = 0
        while True:
            try:
                async with self._feed.subscribe(self._tables) as events:
                    self._set_state(ConnectionState.CONNECTED)
                    attempt = 0
                    self.request_reload()
                    async for event in events:
                        try:
                            await self.handle_event(event)
                        except Exception:
                            logger.exception("Change event on %s not handled", event.table)
                raise ChangeFeedError("Change feed subscription closed.")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                delay = retry_delay(attempt, self.retry_base, self.backoff_factor, self.max_retry_delay)
                attempt += 1
                self._set_state(ConnectionState.RECONNECTING, error=str(exc), attempts=attempt)
                logger.warning("Change feed lost (%s); resubscribing in %.1fs (attempt %d)", exc, delay, attempt)
                await asyncio.sleep(delay)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            self.request_reload()
