"""
Pizzeria — Transactional email (Brevo) and message templates

The client only knows how to deliver an EmailMessage; which message goes
out and when is decided by the side-effect dispatcher.
"""
import logging
from dataclasses import dataclass
from html import escape

import httpx

from pizzeria.core.config import Settings, get_settings
from pizzeria.core.exceptions import SideEffectError
from pizzeria.schemas.order import OrderRead

settings = get_settings()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to_email: str
    to_name: str | None
    subject: str
    html: str
    kind: str = "generic"


class BrevoEmailClient:
    """send(message) → None on success, SideEffectError on any failure."""

    def __init__(self, cfg: Settings | None = None):
        self.cfg = cfg or settings

    def _payload(self, message: EmailMessage) -> dict:
        recipient = {"email": message.to_email}
        if message.to_name:
            recipient["name"] = message.to_name
        return {
            "sender": {"name": self.cfg.EMAIL_SENDER_NAME, "email": self.cfg.EMAIL_SENDER_ADDRESS},
            "to": [recipient],
            "subject": message.subject,
            "htmlContent": message.html,
        }

    def _headers(self) -> dict:
        return {
            "accept": "application/json",
            "content-type": "application/json",
            "api-key": self.cfg.BREVO_API_KEY,
        }

    async def send(self, message: EmailMessage) -> None:
        if not self.cfg.BREVO_API_KEY:
            raise SideEffectError("Email delivery is not configured (BREVO_API_KEY missing).")
        try:
            async with httpx.AsyncClient(timeout=self.cfg.HTTP_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    self.cfg.BREVO_API_URL, json=self._payload(message), headers=self._headers()
                )
        except httpx.HTTPError as exc:
            raise SideEffectError(f"Email API unreachable: {exc}") from exc

        if not response.is_success:
            logger.error("Email '%s' rejected (%s): %s", message.kind, response.status_code, response.text[:200])
            raise SideEffectError(f"Email '{message.kind}' failed with HTTP {response.status_code}.")
        logger.info("Email '%s' sent to %s", message.kind, message.to_email)


# ── Templates ─────────────────────────────────────────────────────────────────

STATUS_TEXTS = {
    "preparing": (
        "Your order #{ref} is being prepared",
        "We are preparing your order. It will be ready soon.",
    ),
    "ready": (
        "Your order #{ref} is ready",
        "Your order is ready for pickup or delivery. Thank you for your trust.",
    ),
    "delivered": (
        "Your order #{ref} has been delivered",
        "Your order has been delivered. Thank you for choosing {brand}.",
    ),
}


def _address_line(order: OrderRead) -> str:
    if order.delivery_method == "delivery" and order.address is not None:
        a = order.address
        return f"Address: {escape(a.street)}, {escape(a.postal_code)} {escape(a.city)}"
    return "Pickup in store"


def _items_html(order: OrderRead) -> str:
    rows = []
    for item in order.items:
        details = ""
        if item.size:
            details += f" — Size: {escape(item.size)}"
        if item.crust:
            details += f" — Crust: {escape(item.crust)}"
        if item.selected_toppings:
            details += f" — Toppings: {escape(', '.join(item.selected_toppings))}"
        name = escape(item.product_name or item.product_id)
        rows.append(f"<li>{item.quantity}x {name}{details} — {item.total_price:.2f} €</li>")
    return "".join(rows)


def status_email(order: OrderRead, status: str, cfg: Settings | None = None) -> EmailMessage | None:
    """Customer email for preparing / ready / delivered, or None without a recipient."""
    cfg = cfg or settings
    if order.user is None or not order.user.email:
        return None
    subject_tpl, body_tpl = STATUS_TEXTS[status]
    subject = subject_tpl.format(ref=order.reference)
    name = escape(order.user.full_name or "")
    html = f"""
      <div style="font-family: Arial, sans-serif; font-size:16px; color:#333;">
        <h2 style="color:#16a34a;">{subject}</h2>
        <p>Hello {name},</p>
        <p>{body_tpl.format(brand=escape(cfg.EMAIL_SENDER_NAME))}</p>
        <div style="margin:1rem 0; padding:1rem; background:#f0fdf4; border-left:4px solid #16a34a;">
          Total: <strong>{order.total_amount:.2f} €</strong><br/>
          <p>{_address_line(order)}</p>
        </div>
        <p style="font-size:13px; color:#666;">(Automatic message)</p>
      </div>
    """
    return EmailMessage(order.user.email, order.user.full_name, subject, html, kind=status)


def customer_pending_email(order: OrderRead, cfg: Settings | None = None) -> EmailMessage | None:
    cfg = cfg or settings
    if order.user is None or not order.user.email:
        return None
    name = escape(order.user.full_name or "")
    html = f"""
      <h2>Order #{order.reference} received</h2>
      <p>Hello {name},</p>
      <p>Your order is awaiting payment.</p>
      <p>Total: {order.total_amount:.2f} €</p>
      <ul>{_items_html(order)}</ul>
      <p>{_address_line(order)}</p>
      <p>Thank you for your trust,<br/>The {escape(cfg.EMAIL_SENDER_NAME)} team</p>
    """
    return EmailMessage(
        order.user.email, order.user.full_name, f"Order confirmation #{order.reference}", html,
        kind="order_received",
    )


def admin_new_order_email(order: OrderRead, cfg: Settings | None = None) -> EmailMessage:
    cfg = cfg or settings
    customer = order.user
    who = "Unknown customer"
    if customer is not None:
        who = f"{escape(customer.full_name or '')} ({escape(customer.email)}, {escape(customer.phone or '-')})"
    html = f"""
      <h2>New order #{order.reference}</h2>
      <p>Customer: {who}</p>
      <p>Method: {order.delivery_method.value}</p>
      <p>{_address_line(order)}</p>
      <p><strong>Total:</strong> {order.total_amount:.2f} €</p>
      <ul>{_items_html(order)}</ul>
    """
    return EmailMessage(
        cfg.ADMIN_NOTIFICATION_EMAIL, "Admin", f"New order #{order.reference}", html, kind="admin_new_order"
    )
