"""
Pizzeria — Phone orders (admin wizard backend)

Steps: find the caller by phone or email → create them if unknown →
add an address → place the order → hand out the payment link.
Orders go through the same pricing path as web checkout, always delivered.
"""
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pizzeria.api.deps import get_notification_service, get_repository, require_admin
from pizzeria.core.config import get_settings
from pizzeria.core.security import generate_temporary_password, hash_password
from pizzeria.db.database import get_db
from pizzeria.models import DeliveryMethod, User, UserRole
from pizzeria.schemas.order import OrderRead, PhoneOrderCreate, PhoneOrderResponse
from pizzeria.schemas.user import AddressCreate, AddressOut, PhoneCustomerCreate, UserRead
from pizzeria.services.addresses import AddressBook
from pizzeria.services.notifications import NotificationService
from pizzeria.services.repository import OrderRepository

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin/phone-orders", tags=["phone-orders"], dependencies=[Depends(require_admin)])

PHONE_ORDER_NOTE = "Phone order"
PLACEHOLDER_EMAIL_DOMAIN = "phone-orders.invalid"


def payment_url(order: OrderRead) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/payment/{order.id}?amount={order.total_amount:.2f}"


@router.get("/customers", response_model=UserRead)
async def find_customer(phone: str | None = None, email: str | None = None, db: AsyncSession = Depends(get_db)):
    if not phone and not email:
        raise HTTPException(status_code=400, detail="phone or email is required.")
    clauses = []
    if phone:
        clauses.append(User.phone == phone)
    if email:
        clauses.append(User.email == email.lower())
    user = await db.scalar(select(User).where(or_(*clauses)).order_by(User.created_at.desc()).limit(1))
    if user is None:
        raise HTTPException(status_code=404, detail="No customer found.")
    return user


@router.post("/customers", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_customer(payload: PhoneCustomerCreate, db: AsyncSession = Depends(get_db)):
    """Customers without an email get a placeholder address so the account stays unique."""
    email = payload.email.lower() if payload.email else (
        f"{payload.phone}-{int(time.time() * 1000)}@{PLACEHOLDER_EMAIL_DOMAIN}"
    )
    user = User(
        email=email,
        full_name=payload.full_name,
        phone=payload.phone,
        role=UserRole.CUSTOMER,
        hashed_password=hash_password(generate_temporary_password()),
        is_phone_order=True,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="A customer with this email already exists.")
    await db.refresh(user)
    logger.info("Phone customer %s created", user.id)
    return user


@router.post("/customers/{user_id}/addresses", response_model=AddressOut, status_code=status.HTTP_201_CREATED)
async def add_customer_address(user_id: str, payload: AddressCreate, db: AsyncSession = Depends(get_db)):
    if await db.get(User, user_id) is None:
        raise HTTPException(status_code=404, detail="Customer not found.")
    return await AddressBook(db).add(user_id, payload)


@router.post("", response_model=PhoneOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_phone_order(
    payload: PhoneOrderCreate,
    repo: OrderRepository = Depends(get_repository),
    notifications: NotificationService = Depends(get_notification_service),
):
    order = await repo.create_order(
        user_id=payload.user_id,
        lines=payload.items,
        delivery_method=DeliveryMethod.DELIVERY,
        address_id=payload.address_id,
        notes=PHONE_ORDER_NOTE,
    )
    url = payment_url(order)
    await notifications.create(
        user_id=order.user_id,
        order_id=order.id,
        type="general",
        title="Payment link",
        message=f"Your order is ready for payment: {url}",
    )
    logger.info("Phone order %s created, total %s", order.id, order.total_amount)
    return PhoneOrderResponse(order=order, payment_url=url)


@router.get("", response_model=list[OrderRead])
async def list_phone_orders(repo: OrderRepository = Depends(get_repository)):
    return await repo.list_orders(notes=PHONE_ORDER_NOTE)


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_phone_order(order_id: str, repo: OrderRepository = Depends(get_repository)):
    order = await repo.get_order(order_id)
    if order.notes != PHONE_ORDER_NOTE:
        raise HTTPException(status_code=400, detail="Only phone orders can be deleted.")
    await repo.delete_order(order_id)
