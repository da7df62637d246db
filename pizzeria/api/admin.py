"""
Pizzeria — Back-office API

Catalog CRUD (categories, products, toppings), user roles and dashboard stats.
"""
import logging
from datetime import datetime, time, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import require_admin
from pizzeria.core.config import get_settings
from pizzeria.db.database import get_db
from pizzeria.models import Category, Order, OrderItem, PaymentStatus, Product, Topping, User, UserRole
from pizzeria.schemas.catalog import (
    CategoryCreate,
    CategoryRead,
    CategoryUpdate,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    ToppingCreate,
    ToppingRead,
    ToppingUpdate,
)
from pizzeria.schemas.user import DashboardStats, RoleUpdateRequest, UserRead

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


async def _get_or_404(db: AsyncSession, model, row_id: str):
    row = await db.get(model, row_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"{model.__name__} '{row_id}' not found.")
    return row


async def _save(db: AsyncSession, row=None):
    if row is not None:
        db.add(row)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Row is referenced or conflicts with existing data.") from exc
    if row is not None:
        await db.refresh(row)
    return row


# ── Categories ────────────────────────────────────────────────────────────────

@router.get("/categories", response_model=list[CategoryRead])
async def list_categories(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Category).order_by(Category.display_order, Category.name))
    return result.scalars().all()


@router.post("/categories", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
async def create_category(payload: CategoryCreate, db: AsyncSession = Depends(get_db)):
    return await _save(db, Category(**payload.model_dump()))


@router.patch("/categories/{category_id}", response_model=CategoryRead)
async def update_category(category_id: str, payload: CategoryUpdate, db: AsyncSession = Depends(get_db)):
    category = await _get_or_404(db, Category, category_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(category, field, value)
    return await _save(db, category)


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: str, db: AsyncSession = Depends(get_db)):
    category = await _get_or_404(db, Category, category_id)
    has_products = await db.scalar(select(Product.id).where(Product.category_id == category_id).limit(1))
    if has_products:
        raise HTTPException(status_code=409, detail="Category still has products.")
    await db.delete(category)
    await _save(db)


# ── Products ──────────────────────────────────────────────────────────────────

@router.get("/products", response_model=list[ProductRead])
async def list_products(category_id: str | None = None, db: AsyncSession = Depends(get_db)):
    stmt = select(Product).order_by(Product.name)
    if category_id:
        stmt = stmt.where(Product.category_id == category_id)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("/products", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(payload: ProductCreate, db: AsyncSession = Depends(get_db)):
    await _get_or_404(db, Category, payload.category_id)
    return await _save(db, Product(**payload.model_dump()))


@router.patch("/products/{product_id}", response_model=ProductRead)
async def update_product(product_id: str, payload: ProductUpdate, db: AsyncSession = Depends(get_db)):
    product = await _get_or_404(db, Product, product_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("category_id"):
        await _get_or_404(db, Category, changes["category_id"])
    for field, value in changes.items():
        setattr(product, field, value)
    return await _save(db, product)


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(product_id: str, db: AsyncSession = Depends(get_db)):
    product = await _get_or_404(db, Product, product_id)
    ordered = await db.scalar(select(OrderItem.id).where(OrderItem.product_id == product_id).limit(1))
    if ordered:
        raise HTTPException(status_code=409, detail="Product appears in orders; mark it unavailable instead.")
    await db.delete(product)
    await _save(db)


# ── Toppings ──────────────────────────────────────────────────────────────────

@router.get("/toppings", response_model=list[ToppingRead])
async def list_toppings(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Topping).order_by(Topping.name))
    return result.scalars().all()


@router.post("/toppings", response_model=ToppingRead, status_code=status.HTTP_201_CREATED)
async def create_topping(payload: ToppingCreate, db: AsyncSession = Depends(get_db)):
    return await _save(db, Topping(**payload.model_dump()))


@router.patch("/toppings/{topping_id}", response_model=ToppingRead)
async def update_topping(topping_id: str, payload: ToppingUpdate, db: AsyncSession = Depends(get_db)):
    topping = await _get_or_404(db, Topping, topping_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(topping, field, value)
    return await _save(db, topping)


@router.delete("/toppings/{topping_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_topping(topping_id: str, db: AsyncSession = Depends(get_db)):
    topping = await _get_or_404(db, Topping, topping_id)
    await db.delete(topping)
    await _save(db)


# ── Users ─────────────────────────────────────────────────────────────────────

@router.get("/users", response_model=list[UserRead])
async def list_users(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).order_by(User.created_at.desc()))
    return result.scalars().all()


@router.patch("/users/{user_id}/role", response_model=UserRead)
async def update_user_role(user_id: str, payload: RoleUpdateRequest, db: AsyncSession = Depends(get_db)):
    user = await _get_or_404(db, User, user_id)
    if user.email.lower() == settings.SUPER_ADMIN_EMAIL.lower() and payload.role != UserRole.ADMIN:
        raise HTTPException(status_code=400, detail="The super-admin account cannot be demoted.")
    user.role = payload.role
    logger.info("User %s role set to %s", user_id, payload.role.value)
    return await _save(db, user)


# ── Dashboard ─────────────────────────────────────────────────────────────────

@router.get("/stats", response_model=DashboardStats)
async def dashboard_stats(db: AsyncSession = Depends(get_db)):
    """Revenue counts paid orders only."""
    today = datetime.combine(datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc)
    total_orders = await db.scalar(select(func.count()).select_from(Order))
    revenue = await db.scalar(
        select(func.coalesce(func.sum(Order.total_amount), 0)).where(Order.payment_status == PaymentStatus.PAID)
    )
    customers = await db.scalar(select(func.count()).select_from(User).where(User.role == UserRole.CUSTOMER))
    orders_today = await db.scalar(select(func.count()).select_from(Order).where(Order.created_at >= today))
    return DashboardStats(
        total_orders=total_orders or 0,
        total_revenue=Decimal(str(revenue or 0)).quantize(Decimal("0.01")),
        total_customers=customers or 0,
        orders_today=orders_today or 0,
    )
