"""
Pizzeria — Shopping cart

A cart lives in Redis under `cart:<cart_id>` until checkout. Line prices are
computed with the same pricing functions checkout uses, so the amount shown in
the cart is the amount charged.
"""
import logging
from decimal import Decimal

import redis.asyncio as aioredis
from pydantic import BaseModel, Field

from pizzeria.core.config import get_settings
from pizzeria.core.exceptions import InvalidRequest
from pizzeria.schemas.order import MAX_LINE_QUANTITY, Crust, OrderLineIn, Size
from pizzeria.services import pricing

settings = get_settings()
logger = logging.getLogger(__name__)

CART_PREFIX = "cart:"


class CartTopping(BaseModel):
    id: str
    name: str
    price: Decimal


def _check_quantity(quantity: int) -> None:
    if quantity > MAX_LINE_QUANTITY:
        raise InvalidRequest(f"At most {MAX_LINE_QUANTITY} of the same item per order.")


class CartItem(BaseModel):
    product_id: str
    product_name: str
    base_price: Decimal
    is_pizza: bool = True
    quantity: int = Field(1, ge=1)
    size: Size | None = None
    crust: Crust | None = None
    toppings: list[CartTopping] = []
    total_price: Decimal = Decimal("0")

    @property
    def key(self) -> str:
        """Same product with the same options merges into one line."""
        topping_ids = ",".join(sorted(t.id for t in self.toppings))
        return f"{self.product_id}|{self.size or ''}|{self.crust or ''}|{topping_ids}"

    def reprice(self) -> None:
        self.total_price = pricing.line_price(self, self.quantity, self.size, self.crust, self.toppings)

    def to_line(self) -> OrderLineIn:
        return OrderLineIn(
            product_id=self.product_id,
            quantity=self.quantity,
            size=self.size,
            crust=self.crust,
            topping_ids=[t.id for t in self.toppings],
        )


class Cart(BaseModel):
    id: str
    items: list[CartItem] = []

    def find(self, key: str) -> CartItem | None:
        return next((i for i in self.items if i.key == key), None)

    def add(self, item: CartItem) -> CartItem:
        existing = self.find(item.key)
        if existing is not None:
            _check_quantity(existing.quantity + item.quantity)
            existing.quantity += item.quantity
            existing.reprice()
            return existing
        _check_quantity(item.quantity)
        item.reprice()
        self.items.append(item)
        return item

    def update_quantity(self, key: str, quantity: int) -> None:
        item = self.find(key)
        if item is None:
            raise InvalidRequest(f"No cart line '{key}'.")
        if quantity <= 0:
            self.remove(key)
            return
        _check_quantity(quantity)
        item.quantity = quantity
        item.reprice()

    def remove(self, key: str) -> None:
        self.items = [i for i in self.items if i.key != key]

    def clear(self) -> None:
        self.items = []

    def total(self) -> Decimal:
        return sum((i.total_price for i in self.items), Decimal("0"))

    def item_count(self) -> int:
        return sum(i.quantity for i in self.items)

    def to_lines(self) -> list[OrderLineIn]:
        return [i.to_line() for i in self.items]


class CartStore:
    def __init__(self, redis: aioredis.Redis, ttl_seconds: int | None = None):
        self._redis = redis
        self._ttl = ttl_seconds or settings.CART_TTL_SECONDS

    async def load(self, cart_id: str) -> Cart:
        """Unknown or expired carts come back empty."""
        raw = await self._redis.get(f"{CART_PREFIX}{cart_id}")
        if not raw:
            return Cart(id=cart_id)
        return Cart.model_validate_json(raw)

    async def save(self, cart: Cart) -> None:
        await self._redis.setex(f"{CART_PREFIX}{cart.id}", self._ttl, cart.model_dump_json())

    async def delete(self, cart_id: str) -> None:
        await self._redis.delete(f"{CART_PREFIX}{cart_id}")
