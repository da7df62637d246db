"""
Pizzeria — Order repository

Typed read/write access to orders together with their items, address and
customer. Rows are converted to OrderRead DTOs before leaving this module.
Every committed write is published to the change feed.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pizzeria.core.exceptions import InvalidRequest, OrderNotFound, PersistenceError
from pizzeria.models import Address, Order, OrderItem, OrderStatus, PaymentStatus, Product, Topping
from pizzeria.models.order import DeliveryMethod
from pizzeria.realtime.change_feed import ChangeFeed, item_snapshot, row_snapshot
from pizzeria.schemas.board import ChangeEvent
from pizzeria.schemas.order import OrderLineIn, OrderRead
from pizzeria.services import pricing

logger = logging.getLogger(__name__)

CONFIRMATION_FLAGS = frozenset({
    "confirmation_sent",
    "preparing_confirmation_sent",
    "ready_confirmation_sent",
    "delivered_confirmation_sent",
})


def _with_details(stmt):
    return stmt.options(
        selectinload(Order.items).selectinload(OrderItem.product),
        selectinload(Order.address),
        selectinload(Order.user),
    ).execution_options(populate_existing=True)


class OrderRepository:
    def __init__(self, db: AsyncSession, feed: ChangeFeed | None = None):
        self.db = db
        self.feed = feed

    # ── Reads ────────────────────────────────────────────────────────────────

    async def list_orders(
        self,
        status: str | None = None,
        user_id: str | None = None,
        notes: str | None = None,
    ) -> list[OrderRead]:
        """All orders newest first, each with items (+product), address and customer."""
        stmt = _with_details(select(Order)).order_by(Order.created_at.desc())
        if status:
            stmt = stmt.where(Order.status == status)
        if user_id:
            stmt = stmt.where(Order.user_id == user_id)
        if notes:
            stmt = stmt.where(Order.notes == notes)
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load orders: {exc}") from exc
        return [OrderRead.from_model(o) for o in result.scalars().unique().all()]

    async def list_user_orders(self, user_id: str) -> list[OrderRead]:
        return await self.list_orders(user_id=user_id)

    async def get_order(self, order_id: str) -> OrderRead:
        return OrderRead.from_model(await self._get_row(order_id))

    async def _get_row(self, order_id: str) -> Order:
        try:
            result = await self.db.execute(_with_details(select(Order)).where(Order.id == order_id))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load order {order_id}: {exc}") from exc
        order = result.scalars().unique().one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        return order

    # ── Writes ───────────────────────────────────────────────────────────────

    async def create_order(
        self,
        user_id: str,
        lines: Iterable[OrderLineIn],
        delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY,
        address_id: str | None = None,
        notes: str | None = None,
    ) -> OrderRead:
        """
        Price every line from the catalog and insert the order with its items
        in one transaction, status pending / payment pending.
        """
        lines = list(lines)
        if not lines:
            raise InvalidRequest("An order needs at least one item.")
        if delivery_method == DeliveryMethod.DELIVERY and not address_id:
            raise InvalidRequest("A delivery order needs an address.")

        products = await self._load_by_id(Product, {l.product_id for l in lines})
        toppings = await self._load_by_id(Topping, {t for l in lines for t in l.topping_ids})

        if address_id:
            address = await self.db.get(Address, address_id)
            if address is None or address.user_id != user_id:
                raise InvalidRequest("Address does not belong to this customer.")

        items: list[OrderItem] = []
        for position, line in enumerate(lines):
            product = products.get(line.product_id)
            if product is None or not product.is_available:
                raise InvalidRequest(f"Product '{line.product_id}' is not available.")
            selected = []
            for topping_id in line.topping_ids:
                topping = toppings.get(topping_id)
                if topping is None or not topping.is_available:
                    raise InvalidRequest(f"Topping '{topping_id}' is not available.")
                selected.append(topping)

            total = pricing.line_price(product, line.quantity, line.size, line.crust, selected)
            items.append(OrderItem(
                product_id=product.id,
                quantity=line.quantity,
                unit_price=pricing.quantize_money(product.base_price),
                total_price=pricing.quantize_money(total),
                size=line.size,
                crust=line.crust,
                selected_toppings=[t.name for t in selected],
                position=position,
            ))

        total_amount = pricing.order_total((i.total_price for i in items), delivery_method)
        order = Order(
            user_id=user_id,
            address_id=address_id,
            delivery_method=delivery_method,
            total_amount=pricing.quantize_money(total_amount),
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            notes=notes or None,
            items=items,
        )
        self.db.add(order)
        await self._commit(f"create order for user {user_id}")

        created = await self.get_order(order.id)
        await self._publish("orders", "insert", new=row_snapshot(created))
        for item in items:
            await self._publish("order_items", "insert", new=item_snapshot(item))
        logger.info("Order %s created: %d items, total %s", created.id, len(items), created.total_amount)
        return created

    async def set_status(self, order_id: str, status: OrderStatus) -> OrderRead:
        order = await self._get_row(order_id)
        old = row_snapshot(order)
        order.status = status
        order.updated_at = datetime.now(timezone.utc)
        await self._commit(f"set status of {order_id}")

        updated = await self.get_order(order_id)
        await self._publish("orders", "update", old=old, new=row_snapshot(updated))
        return updated

    async def mark_flag(self, order_id: str, flag: str) -> OrderRead:
        """Set one confirmation flag. Flags are never reset."""
        if flag not in CONFIRMATION_FLAGS:
            raise InvalidRequest(f"Unknown confirmation flag '{flag}'.")
        order = await self._get_row(order_id)
        if getattr(order, flag):
            return OrderRead.from_model(order)
        old = row_snapshot(order)
        setattr(order, flag, True)
        await self._commit(f"set {flag} on {order_id}")

        updated = await self.get_order(order_id)
        await self._publish("orders", "update", old=old, new=row_snapshot(updated))
        return updated

    async def set_payment_status(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        stripe_session_id: str | None = None,
    ) -> OrderRead:
        order = await self._get_row(order_id)
        old = row_snapshot(order)
        order.payment_status = payment_status
        if stripe_session_id:
            order.stripe_session_id = stripe_session_id
        order.updated_at = datetime.now(timezone.utc)
        await self._commit(f"set payment status of {order_id}")

        updated = await self.get_order(order_id)
        await self._publish("orders", "update", old=old, new=row_snapshot(updated))
        return updated

    async def delete_order(self, order_id: str) -> None:
        order = await self._get_row(order_id)
        old = row_snapshot(order)
        await self.db.delete(order)
        await self._commit(f"delete order {order_id}")
        await self._publish("orders", "delete", old=old)

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _load_by_id(self, model, ids: set[str]) -> dict:
        if not ids:
            return {}
        try:
            result = await self.db.execute(select(model).where(model.id.in_(ids)))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load {model.__tablename__}: {exc}") from exc
        return {row.id: row for row in result.scalars().all()}

    async def _commit(self, what: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Write failed (%s): %s", what, exc)
            raise PersistenceError(f"Could not {what}.") from exc

    async def _publish(self, table: str, event_type: str, old: dict | None = None, new: dict | None = None):
        if self.feed is None:
            return
        await self.feed.publish(ChangeEvent(table=table, event_type=event_type, old=old, new=new))
