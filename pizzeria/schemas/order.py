"""
Pizzeria — Order schemas

Each query shape the repository returns has its own explicit DTO;
ORM rows never leave the repository.
"""
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pizzeria.models.order import DeliveryMethod, OrderStatus, PaymentStatus

Size = Literal["small", "medium", "large"]
Crust = Literal["thin", "thick", "stuffed"]
MAX_LINE_QUANTITY = 50


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    full_name: str | None = None
    phone: str | None = None


class AddressRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    street: str
    city: str
    postal_code: str
    is_default: bool = False


class OrderItemRead(BaseModel):
    id: str
    product_id: str
    product_name: str | None = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    size: str | None = None
    crust: str | None = None
    selected_toppings: list[str] = []

    @classmethod
    def from_model(cls, item) -> "OrderItemRead":
        product = item.__dict__.get("product")
        return cls(
            id=item.id,
            product_id=item.product_id,
            product_name=product.name if product is not None else None,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            size=item.size,
            crust=item.crust,
            selected_toppings=list(item.selected_toppings or []),
        )


class OrderRead(BaseModel):
    id: str
    user_id: str
    address_id: str | None = None
    status: OrderStatus
    payment_status: PaymentStatus
    delivery_method: DeliveryMethod
    total_amount: Decimal
    notes: str | None = None
    stripe_session_id: str | None = None
    confirmation_sent: bool = False
    preparing_confirmation_sent: bool = False
    ready_confirmation_sent: bool = False
    delivered_confirmation_sent: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[OrderItemRead] = []
    address: AddressRead | None = None
    user: UserSummary | None = None

    @property
    def reference(self) -> str:
        """Short human-facing order number."""
        return self.id[-8:]

    @classmethod
    def from_model(cls, order) -> "OrderRead":
        loaded = order.__dict__
        user = loaded.get("user")
        address = loaded.get("address")
        return cls(
            id=order.id,
            user_id=order.user_id,
            address_id=order.address_id,
            status=order.status,
            payment_status=order.payment_status,
            delivery_method=order.delivery_method,
            total_amount=Decimal(order.total_amount).quantize(Decimal("0.01")),
            notes=order.notes,
            stripe_session_id=order.stripe_session_id,
            confirmation_sent=order.confirmation_sent,
            preparing_confirmation_sent=order.preparing_confirmation_sent,
            ready_confirmation_sent=order.ready_confirmation_sent,
            delivered_confirmation_sent=order.delivered_confirmation_sent,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[OrderItemRead.from_model(i) for i in loaded.get("items", [])],
            address=AddressRead.model_validate(address) if address is not None else None,
            user=UserSummary.model_validate(user) if user is not None else None,
        )


class OrderLineIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1, le=MAX_LINE_QUANTITY)
    size: Size | None = None
    crust: Crust | None = None
    topping_ids: list[str] = Field(default_factory=list, max_length=20)


class CheckoutRequest(BaseModel):
    delivery_method: DeliveryMethod = DeliveryMethod.DELIVERY
    address_id: str | None = None
    items: list[OrderLineIn] = Field(default_factory=list, max_length=50)
    cart_id: str | None = None
    notes: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def _check_source(self):
        if not self.items and not self.cart_id:
            raise ValueError("Either items or cart_id is required.")
        if self.delivery_method == DeliveryMethod.DELIVERY and not self.address_id:
            raise ValueError("address_id is required for delivery orders.")
        return self


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., examples=["preparing"])


class PaymentUpdateRequest(BaseModel):
    payment_status: PaymentStatus
    stripe_session_id: str | None = None


class CheckoutSessionResponse(BaseModel):
    order_id: str
    url: str


class TransitionResult(BaseModel):
    order_id: str
    applied: list[OrderStatus] = []
    emails_sent: list[str] = []
    messages: list[str] = []
    warnings: list[str] = []
    order: OrderRead | None = None


class PhoneOrderCreate(BaseModel):
    user_id: str
    address_id: str
    items: list[OrderLineIn] = Field(..., min_length=1, max_length=50)


class PhoneOrderResponse(BaseModel):
    order: OrderRead
    payment_url: str
