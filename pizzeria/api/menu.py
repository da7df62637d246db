"""
Pizzeria — Public menu
"""
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pizzeria.db.database import get_db
from pizzeria.models import Category, Topping
from pizzeria.schemas.catalog import CategoryRead, MenuCategory, ProductRead, ToppingRead

router = APIRouter(prefix="/menu", tags=["menu"])


@router.get("", response_model=list[MenuCategory])
async def get_menu(db: AsyncSession = Depends(get_db)):
    """Active categories in display order, each with its available products."""
    result = await db.execute(
        select(Category)
        .where(Category.is_active.is_(True))
        .options(selectinload(Category.products))
        .order_by(Category.display_order, Category.name)
    )
    menu = []
    for category in result.scalars().all():
        products = sorted((p for p in category.products if p.is_available), key=lambda p: p.name)
        menu.append(MenuCategory(
            **CategoryRead.model_validate(category).model_dump(),
            products=[ProductRead.model_validate(p) for p in products],
        ))
    return menu


@router.get("/toppings", response_model=list[ToppingRead])
async def get_toppings(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Topping).where(Topping.is_available.is_(True)).order_by(Topping.name)
    )
    return result.scalars().all()
