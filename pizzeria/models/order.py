"""
Pizzeria — Order DB models

[TRANSACTIONAL DATA] — orders, their line items and the one-shot
confirmation flags that guard outbound emails.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pizzeria.db.database import Base


class OrderStatus(str, PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, PyEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class DeliveryMethod(str, PyEnum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


def _values(enum_cls):
    return [member.value for member in enum_cls]


class Order(Base):
    """
    [TRANSACTIONAL DATA]
    The *_confirmation_sent flags only ever go false → true.
    """
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    address_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("addresses.id"), nullable=True)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status", values_callable=_values),
        default=OrderStatus.PENDING,
        nullable=False,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=_values),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    delivery_method: Mapped[DeliveryMethod] = mapped_column(
        Enum(DeliveryMethod, name="delivery_method", values_callable=_values),
        default=DeliveryMethod.DELIVERY,
        nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    stripe_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    confirmation_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    preparing_confirmation_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ready_confirmation_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivered_confirmation_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.position"
    )
    user: Mapped["User"] = relationship("User")  # noqa: F821
    address: Mapped[Optional["Address"]] = relationship("Address")  # noqa: F821

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status}>"


class OrderItem(Base):
    """
    [TRANSACTIONAL DATA] — immutable after creation; total_price is never recomputed.
    """
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    size: Mapped[str | None] = mapped_column(String(16), nullable=True)
    crust: Mapped[str | None] = mapped_column(String(16), nullable=True)
    selected_toppings: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    # line number within the order, as submitted
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship("Product")  # noqa: F821
