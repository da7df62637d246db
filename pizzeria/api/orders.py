"""
Pizzeria — Customer orders API

Flow:
  1. JWT validated by middleware (request.state.user set)
  2. Checkout prices every line from the catalog and stores the order
     (pending / payment pending); the change feed tells the order board
  3. Customer is redirected to a hosted checkout session
  4. Payment function calls the webhook; a paid order becomes confirmed
Pending orders get their "order received" emails the first time they are
observed unconfirmed (checkout response or any later read).
"""
import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from pizzeria.api.deps import (
    PendingConfirmationScheduler,
    current_user,
    get_cart_store,
    get_confirmation_scheduler,
    get_payment_client,
    get_policy,
    get_repository,
)
from pizzeria.core.config import get_settings
from pizzeria.core.security import is_admin_claims
from pizzeria.models import PaymentStatus, User, UserRole
from pizzeria.schemas.order import (
    CheckoutRequest,
    CheckoutSessionResponse,
    OrderRead,
    PaymentUpdateRequest,
    TransitionResult,
)
from pizzeria.services.cart import CartStore
from pizzeria.services.payments import PaymentClient
from pizzeria.services.repository import OrderRepository
from pizzeria.services.transitions import TransitionPolicy

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


def _ensure_visible(order: OrderRead, user: User, request: Request) -> None:
    if order.user_id == user.id or user.role == UserRole.ADMIN:
        return
    if is_admin_claims({**(request.state.user or {}), "email": user.email}):
        return
    # 404 rather than 403: order ids are not disclosed to other customers
    raise HTTPException(status_code=404, detail=f"Order '{order.id}' not found.")


@router.post("/checkout", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def checkout(
    payload: CheckoutRequest,
    user: User = Depends(current_user),
    repo: OrderRepository = Depends(get_repository),
    carts: CartStore = Depends(get_cart_store),
    schedule_confirmation: PendingConfirmationScheduler = Depends(get_confirmation_scheduler),
):
    """
    Place an order from explicit lines or from a stored cart.
    Idempotency enforced by IdempotencyMiddleware.
    """
    lines = payload.items
    if not lines and payload.cart_id:
        cart = await carts.load(payload.cart_id)
        if not cart.items:
            raise HTTPException(status_code=400, detail="Cart is empty.")
        lines = cart.to_lines()

    order = await repo.create_order(
        user_id=user.id,
        lines=lines,
        delivery_method=payload.delivery_method,
        address_id=payload.address_id,
        notes=payload.notes,
    )
    if payload.cart_id:
        await carts.delete(payload.cart_id)

    await schedule_confirmation(order)
    return order


@router.get("/mine", response_model=list[OrderRead])
async def my_orders(user: User = Depends(current_user), repo: OrderRepository = Depends(get_repository)):
    return await repo.list_user_orders(user.id)


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: str,
    request: Request,
    user: User = Depends(current_user),
    repo: OrderRepository = Depends(get_repository),
    schedule_confirmation: PendingConfirmationScheduler = Depends(get_confirmation_scheduler),
):
    order = await repo.get_order(order_id)
    _ensure_visible(order, user, request)
    await schedule_confirmation(order)
    return order


@router.post("/{order_id}/checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    order_id: str,
    request: Request,
    user: User = Depends(current_user),
    repo: OrderRepository = Depends(get_repository),
    payments: PaymentClient = Depends(get_payment_client),
):
    order = await repo.get_order(order_id)
    _ensure_visible(order, user, request)
    if order.payment_status == PaymentStatus.PAID:
        raise HTTPException(status_code=409, detail="Order is already paid.")
    url = await payments.create_checkout_session(order.total_amount, order.id)
    return CheckoutSessionResponse(order_id=order.id, url=url)


@router.post("/{order_id}/payment", response_model=TransitionResult)
async def payment_webhook(
    order_id: str,
    payload: PaymentUpdateRequest,
    x_webhook_secret: str = Header("", alias="X-Webhook-Secret"),
    policy: TransitionPolicy = Depends(get_policy),
):
    """Called by the payment function once the checkout session completes."""
    if not hmac.compare_digest(x_webhook_secret, settings.PAYMENT_WEBHOOK_SECRET):
        raise HTTPException(status_code=401, detail="Invalid webhook secret.")
    return await policy.update_payment(order_id, payload.payment_status, payload.stripe_session_id)
