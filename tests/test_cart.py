"""
Cart: line merging, quantity updates and Redis persistence.
"""
from decimal import Decimal

import pytest

from pizzeria.core.exceptions import InvalidRequest
from pizzeria.services.cart import Cart, CartItem, CartStore, CartTopping

OLIVES = CartTopping(id="t-olives", name="Olives", price=Decimal("1.50"))
BASIL = CartTopping(id="t-basil", name="Basil", price=Decimal("0.50"))


def margherita(**kwargs):
    fields = dict(product_id="p-marg", product_name="Margherita", base_price=Decimal("10.00"), is_pizza=True)
    fields.update(kwargs)
    return CartItem(**fields)


def test_same_configuration_merges_into_one_line():
    cart = Cart(id="c1")
    cart.add(margherita(size="large", toppings=[OLIVES, BASIL]))
    cart.add(margherita(size="large", toppings=[BASIL, OLIVES], quantity=2))

    assert len(cart.items) == 1
    line = cart.items[0]
    assert line.quantity == 3
    assert line.total_price == (Decimal("10.00") * Decimal("1.3") + Decimal("2.00")) * 3


def test_different_options_make_separate_lines():
    cart = Cart(id="c1")
    cart.add(margherita(size="small"))
    cart.add(margherita(size="large"))
    cart.add(margherita(size="large", crust="thick"))
    assert len(cart.items) == 3


def test_update_quantity_reprices_and_zero_removes():
    cart = Cart(id="c1")
    item = cart.add(margherita(size="medium"))

    cart.update_quantity(item.key, 4)
    assert cart.items[0].total_price == Decimal("40.00")

    cart.update_quantity(item.key, 0)
    assert cart.items == []


def test_update_unknown_line_is_rejected():
    with pytest.raises(InvalidRequest):
        Cart(id="c1").update_quantity("nope", 2)


def test_merged_line_cannot_exceed_checkout_limit():
    cart = Cart(id="c1")
    cart.add(margherita(quantity=30))

    with pytest.raises(InvalidRequest):
        cart.add(margherita(quantity=30))
    assert cart.items[0].quantity == 30

    with pytest.raises(InvalidRequest):
        cart.update_quantity(cart.items[0].key, 51)
    cart.add(margherita(quantity=20))
    assert cart.to_lines()[0].quantity == 50


def test_totals_and_item_count():
    cart = Cart(id="c1")
    cart.add(margherita(size="medium"))
    cart.add(CartItem(product_id="p-cola", product_name="Cola", base_price=Decimal("2.00"), is_pizza=False, quantity=2))

    assert cart.total() == Decimal("14.00")
    assert cart.item_count() == 3

    cart.remove(cart.items[0].key)
    assert cart.total() == Decimal("4.00")
    cart.clear()
    assert cart.item_count() == 0


def test_lines_carry_topping_ids_for_checkout():
    cart = Cart(id="c1")
    cart.add(margherita(size="large", crust="thin", toppings=[OLIVES]))
    (line,) = cart.to_lines()
    assert line.product_id == "p-marg"
    assert line.size == "large"
    assert line.crust == "thin"
    assert line.topping_ids == ["t-olives"]


@pytest.mark.asyncio
async def test_store_keeps_cart_between_requests(redis):
    store = CartStore(redis, ttl_seconds=60)
    cart = await store.load("abc")
    assert cart.items == []

    cart.add(margherita(size="large", toppings=[OLIVES]))
    await store.save(cart)

    loaded = await store.load("abc")
    assert loaded.items[0].key == cart.items[0].key
    assert loaded.total() == cart.total()

    await store.delete("abc")
    assert (await store.load("abc")).items == []
