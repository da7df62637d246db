"""
Pizzeria — Line and order pricing

The one pricing implementation shared by the cart, checkout and phone orders:

    line = (base × size_multiplier + crust_surcharge + Σ toppings) × quantity   (pizzas)
    line = (base + Σ toppings) × quantity                                      (everything else)
    total = Σ lines + delivery fee

Arithmetic is exact Decimal; rounding to cents happens only when persisting.
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol

from pizzeria.core.exceptions import InvalidRequest

SIZE_MULTIPLIERS: dict[str, Decimal] = {
    "small": Decimal("0.8"),
    "medium": Decimal("1.0"),
    "large": Decimal("1.3"),
}

CRUST_SURCHARGES: dict[str, Decimal] = {
    "thin": Decimal("0"),
    "thick": Decimal("1.50"),
    "stuffed": Decimal("3.00"),
}

DELIVERY_FEE = Decimal("3.50")
CENT = Decimal("0.01")


class Priced(Protocol):
    price: Decimal


class PricedProduct(Protocol):
    base_price: Decimal
    is_pizza: bool


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 1.3 as 1.3 instead of its binary float expansion
    return Decimal(str(value))


def quantize_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def size_multiplier(size: str | None) -> Decimal:
    if size is None:
        return Decimal("1")
    try:
        return SIZE_MULTIPLIERS[size]
    except KeyError:
        raise InvalidRequest(f"Unknown size '{size}'.") from None


def crust_surcharge(crust: str | None) -> Decimal:
    if crust is None:
        return Decimal("0")
    try:
        return CRUST_SURCHARGES[crust]
    except KeyError:
        raise InvalidRequest(f"Unknown crust '{crust}'.") from None


def line_price(
    product: PricedProduct,
    quantity: int,
    size: str | None = None,
    crust: str | None = None,
    toppings: Iterable[Priced] = (),
) -> Decimal:
    if quantity < 1:
        raise InvalidRequest("Quantity must be a positive integer.")

    base = to_decimal(product.base_price)
    if base < 0:
        raise InvalidRequest("Base price cannot be negative.")

    toppings_total = Decimal("0")
    for topping in toppings:
        price = to_decimal(topping.price)
        if price < 0:
            raise InvalidRequest("Topping price cannot be negative.")
        toppings_total += price

    if product.is_pizza:
        unit = base * size_multiplier(size) + crust_surcharge(crust)
    else:
        # validated but ignored for drinks, desserts, ...
        size_multiplier(size)
        crust_surcharge(crust)
        unit = base

    return (unit + toppings_total) * quantity


def delivery_fee(delivery_method: str) -> Decimal:
    return DELIVERY_FEE if delivery_method == "delivery" else Decimal("0")


def order_total(line_totals: Iterable[Decimal], delivery_method: str) -> Decimal:
    return sum((to_decimal(t) for t in line_totals), Decimal("0")) + delivery_fee(delivery_method)
