"""
Pizzeria — Order status transition policy

Kitchen flow:  pending → confirmed → preparing → ready → delivered
cancelled is reachable from any state; completed is a terminal alias.

The only ordering rule enforced is the implicit confirmation hop:
pending → preparing is persisted as confirmed, then preparing. Every other
target is applied directly.
"""
import logging

from pizzeria.core.exceptions import InvalidRequest
from pizzeria.models import OrderStatus, PaymentStatus
from pizzeria.schemas.order import OrderRead, TransitionResult
from pizzeria.services.dispatcher import SideEffectDispatcher
from pizzeria.services.repository import OrderRepository

logger = logging.getLogger(__name__)

RECOGNIZED_STATUSES = frozenset(s.value for s in OrderStatus)
TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.COMPLETED})

KITCHEN_FLOW = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
)

AUTO_CONFIRM_MESSAGE = "Order confirmed automatically"
STATUS_UPDATED_MESSAGE = "Order status updated"


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(getattr(value, "value", value))
    except ValueError:
        raise InvalidRequest(f"Unknown order status '{value}'.") from None


def next_status(status) -> OrderStatus | None:
    """Next step of the kitchen flow, or None once there is nothing left to advance to."""
    status = parse_status(status)
    if status not in KITCHEN_FLOW:
        return None
    index = KITCHEN_FLOW.index(status)
    if index + 1 >= len(KITCHEN_FLOW):
        return None
    return KITCHEN_FLOW[index + 1]


class TransitionPolicy:
    def __init__(self, repo: OrderRepository, dispatcher: SideEffectDispatcher):
        self.repo = repo
        self.dispatcher = dispatcher

    async def request_transition(self, order_id: str, target) -> TransitionResult:
        """
        Persist `target` (plus the implicit confirmation when needed) and run
        side effects after each persisted step. PersistenceError propagates;
        a step that failed to persist fires nothing.
        """
        target = parse_status(target)
        current = await self.repo.get_order(order_id)
        result = TransitionResult(order_id=order_id)

        if current.status == OrderStatus.PENDING and target == OrderStatus.PREPARING:
            await self._apply(order_id, OrderStatus.CONFIRMED, result)
            result.messages.append(AUTO_CONFIRM_MESSAGE)
            logger.info("Order %s: confirmed automatically before preparing", order_id)

        result.order = await self._apply(order_id, target, result)
        result.messages.append(STATUS_UPDATED_MESSAGE)
        logger.info("Order %s: %s → %s", order_id, current.status.value, target.value)
        return result

    async def advance(self, order_id: str) -> TransitionResult:
        current = await self.repo.get_order(order_id)
        target = next_status(current.status)
        if target is None:
            raise InvalidRequest(f"Order {current.reference} cannot advance from '{current.status.value}'.")
        return await self.request_transition(order_id, target)

    async def update_payment(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        stripe_session_id: str | None = None,
    ) -> TransitionResult:
        """
        Persist the payment status. An order becoming paid while still pending
        moves to confirmed; redelivered webhooks never move an order back.
        """
        before = await self.repo.get_order(order_id)
        order = await self.repo.set_payment_status(order_id, payment_status, stripe_session_id)
        logger.info("Order %s: payment %s", order_id, payment_status.value)
        becomes_paid = payment_status == PaymentStatus.PAID and before.payment_status != PaymentStatus.PAID
        if becomes_paid and before.status == OrderStatus.PENDING:
            return await self.request_transition(order_id, OrderStatus.CONFIRMED)
        return TransitionResult(order_id=order_id, order=order)

    async def _apply(self, order_id: str, status: OrderStatus, result: TransitionResult) -> OrderRead:
        order = await self.repo.set_status(order_id, status)
        result.applied.append(status)

        outcome = await self.dispatcher.on_transition(order, status)
        result.emails_sent.extend(outcome.emails_sent)
        result.warnings.extend(outcome.warnings)
        if outcome.emails_sent:
            # pick up the confirmation flag written by the dispatcher
            order = await self.repo.get_order(order_id)
        return order
