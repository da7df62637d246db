"""
Pizzeria — Cart API

Carts are anonymous and addressed by a client-generated id. Prices are read
from the catalog on every add, never trusted from the client.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import get_cart_store
from pizzeria.db.database import get_db
from pizzeria.models import Product, Topping
from pizzeria.schemas.order import MAX_LINE_QUANTITY, OrderLineIn
from pizzeria.services.cart import Cart, CartItem, CartStore, CartTopping

router = APIRouter(prefix="/cart", tags=["cart"])


class QuantityUpdate(BaseModel):
    quantity: int = Field(..., le=MAX_LINE_QUANTITY)


class CartView(BaseModel):
    cart: Cart
    total: str
    item_count: int


def _view(cart: Cart) -> CartView:
    return CartView(cart=cart, total=f"{cart.total():.2f}", item_count=cart.item_count())


@router.get("/{cart_id}", response_model=CartView)
async def get_cart(cart_id: str, store: CartStore = Depends(get_cart_store)):
    return _view(await store.load(cart_id))


@router.post("/{cart_id}/items", response_model=CartView, status_code=status.HTTP_201_CREATED)
async def add_item(
    cart_id: str,
    line: OrderLineIn,
    store: CartStore = Depends(get_cart_store),
    db: AsyncSession = Depends(get_db),
):
    product = await db.get(Product, line.product_id)
    if product is None or not product.is_available:
        raise HTTPException(status_code=404, detail="Product not available.")

    toppings = []
    if line.topping_ids:
        result = await db.execute(select(Topping).where(Topping.id.in_(line.topping_ids)))
        found = {t.id: t for t in result.scalars().all()}
        for topping_id in line.topping_ids:
            topping = found.get(topping_id)
            if topping is None or not topping.is_available:
                raise HTTPException(status_code=404, detail=f"Topping '{topping_id}' not available.")
            toppings.append(CartTopping(id=topping.id, name=topping.name, price=topping.price))

    cart = await store.load(cart_id)
    cart.add(CartItem(
        product_id=product.id,
        product_name=product.name,
        base_price=product.base_price,
        is_pizza=product.is_pizza,
        quantity=line.quantity,
        size=line.size if product.is_pizza else None,
        crust=line.crust if product.is_pizza else None,
        toppings=toppings,
    ))
    await store.save(cart)
    return _view(cart)


@router.patch("/{cart_id}/items/{line_key}", response_model=CartView)
async def update_item(
    cart_id: str,
    line_key: str,
    payload: QuantityUpdate,
    store: CartStore = Depends(get_cart_store),
):
    """A quantity of zero or less removes the line."""
    cart = await store.load(cart_id)
    cart.update_quantity(line_key, payload.quantity)
    await store.save(cart)
    return _view(cart)


@router.delete("/{cart_id}/items/{line_key}", response_model=CartView)
async def remove_item(cart_id: str, line_key: str, store: CartStore = Depends(get_cart_store)):
    cart = await store.load(cart_id)
    cart.remove(line_key)
    await store.save(cart)
    return _view(cart)


@router.delete("/{cart_id}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cart(cart_id: str, store: CartStore = Depends(get_cart_store)):
    await store.delete(cart_id)
