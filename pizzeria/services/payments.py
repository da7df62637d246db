"""
Pizzeria — Card payment checkout sessions

The payment function creates a hosted checkout session and returns its URL.
Completion is reported back later through the payment webhook.
"""
import logging
from decimal import Decimal

import httpx

from pizzeria.core.config import Settings, get_settings
from pizzeria.core.exceptions import SideEffectError

settings = get_settings()
logger = logging.getLogger(__name__)


class PaymentClient:
    def __init__(self, cfg: Settings | None = None):
        self.cfg = cfg or settings

    async def create_checkout_session(self, amount: Decimal, order_id: str) -> str:
        """POST {amount, orderId} → {url}. Any failure raises SideEffectError."""
        try:
            async with httpx.AsyncClient(timeout=self.cfg.HTTP_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    self.cfg.PAYMENT_FUNCTION_URL,
                    json={"amount": float(amount), "orderId": order_id},
                )
        except httpx.TimeoutException as exc:
            raise SideEffectError("Payment service did not respond in time.") from exc
        except httpx.RequestError as exc:
            raise SideEffectError(f"Payment service unreachable: {exc}") from exc

        if not response.is_success:
            logger.error("Checkout session for %s rejected (%s)", order_id, response.status_code)
            raise SideEffectError(f"Payment service returned HTTP {response.status_code}.")

        try:
            url = response.json().get("url")
        except ValueError:
            url = None
        if not url:
            raise SideEffectError("Payment service returned no checkout URL.")
        logger.info("Checkout session created for order %s", order_id)
        return url
