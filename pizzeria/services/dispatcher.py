"""
Pizzeria — Side-effect dispatcher

Runs after every persisted status change:
  1. Customer notification-center entry (every transition)
  2. Customer status email for preparing / ready / delivered, at most once
     per order and status, gated by the matching *_confirmation_sent flag
  3. Audible alert for every recognised status (fire-and-forget)

Flags are written only after a successful send. A failed send leaves the
flag false so the next transition into the same status tries again; there
is no automatic retry.
"""
import logging
from dataclasses import dataclass, field

from pizzeria.core.exceptions import PersistenceError, SideEffectError
from pizzeria.models import OrderStatus
from pizzeria.schemas.order import OrderRead
from pizzeria.services import email as templates
from pizzeria.services.alerts import AlertSink
from pizzeria.services.notifications import NotificationService
from pizzeria.services.repository import OrderRepository

logger = logging.getLogger(__name__)

EMAIL_FLAGS = {
    OrderStatus.PREPARING: "preparing_confirmation_sent",
    OrderStatus.READY: "ready_confirmation_sent",
    OrderStatus.DELIVERED: "delivered_confirmation_sent",
}

STATUS_MESSAGES = {
    OrderStatus.CONFIRMED: "Your order has been confirmed",
    OrderStatus.PREPARING: "Your order is being prepared",
    OrderStatus.READY: "Your order is ready",
    OrderStatus.DELIVERED: "Your order has been delivered",
    OrderStatus.CANCELLED: "Your order has been cancelled",
}
GENERIC_STATUS_MESSAGE = "Your order status has been updated"
NOTIFICATION_TITLE = "Order update"


def notification_type(status: OrderStatus) -> str:
    if status == OrderStatus.READY:
        return "order_ready"
    if status == OrderStatus.DELIVERED:
        return "order_delivered"
    return "order_confirmed"


@dataclass
class DispatchOutcome:
    emails_sent: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class SideEffectDispatcher:
    def __init__(
        self,
        repo: OrderRepository,
        notifications: NotificationService,
        email_client,
        alerts: AlertSink,
    ):
        self.repo = repo
        self.notifications = notifications
        self.email = email_client
        self.alerts = alerts

    async def on_transition(self, order: OrderRead, status: OrderStatus) -> DispatchOutcome:
        """`order` is the freshly persisted state, read back after the status write."""
        outcome = DispatchOutcome()
        await self._notify_customer(order, status, outcome)

        flag = EMAIL_FLAGS.get(status)
        if flag is not None:
            await self._send_status_email(order, status, flag, outcome)

        await self.alerts.play_status(status, order_id=order.id)
        return outcome

    async def ensure_pending_confirmation(self, order_id: str) -> DispatchOutcome:
        """
        Admin "new order" + customer "order received", once per order.
        No-op unless the order is still pending with confirmation_sent unset.
        The admin email goes first: a failed send is retried on the next
        observation, so only staff can receive a duplicate.
        """
        outcome = DispatchOutcome()
        order = await self.repo.get_order(order_id)
        if order.status != OrderStatus.PENDING or order.confirmation_sent:
            return outcome

        messages = [templates.admin_new_order_email(order), templates.customer_pending_email(order)]
        for message in messages:
            if message is None:
                continue
            try:
                await self.email.send(message)
            except SideEffectError as exc:
                logger.warning("Order %s: '%s' email failed: %s", order_id, message.kind, exc)
                outcome.warnings.append(str(exc))
                return outcome
            outcome.emails_sent.append(message.kind)

        await self._mark(order_id, "confirmation_sent", outcome)
        return outcome

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _notify_customer(self, order: OrderRead, status: OrderStatus, outcome: DispatchOutcome):
        try:
            await self.notifications.create(
                user_id=order.user_id,
                order_id=order.id,
                type=notification_type(status),
                title=NOTIFICATION_TITLE,
                message=STATUS_MESSAGES.get(status, GENERIC_STATUS_MESSAGE),
            )
        except PersistenceError as exc:
            logger.warning("Order %s: notification not stored: %s", order.id, exc)
            outcome.warnings.append(str(exc))

    async def _send_status_email(self, order: OrderRead, status: OrderStatus, flag: str, outcome: DispatchOutcome):
        if getattr(order, flag):
            logger.debug("Order %s: %s email already sent", order.id, status.value)
            return

        message = templates.status_email(order, status.value)
        if message is None:
            logger.warning("Order %s: customer has no email address, %s email skipped", order.id, status.value)
            outcome.warnings.append(f"No email address for order {order.reference}.")
            return

        try:
            await self.email.send(message)
        except SideEffectError as exc:
            logger.warning("Order %s: %s email failed: %s", order.id, status.value, exc)
            outcome.warnings.append(f"Email '{status.value}' not sent: {exc}")
            return

        outcome.emails_sent.append(status.value)
        await self._mark(order.id, flag, outcome)

    async def _mark(self, order_id: str, flag: str, outcome: DispatchOutcome):
        try:
            await self.repo.mark_flag(order_id, flag)
        except PersistenceError as exc:
            logger.error("Order %s: email sent but %s not persisted: %s", order_id, flag, exc)
            outcome.warnings.append(str(exc))
