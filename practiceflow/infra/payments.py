"""
Stripe Payment Gateway

Thin async wrapper around the Stripe SDK. Each SDK call runs in a worker
thread, is bounded by provider_timeout_seconds and is never retried.
Stripe failures surface as PaymentGatewayError (HTTP 502).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import stripe

from practiceflow.config import settings
from practiceflow.core.errors import UpstreamServiceError

logger = logging.getLogger(__name__)


class PaymentGatewayError(UpstreamServiceError):
    """Raised when a Stripe call fails or times out."""
    pass


@dataclass
class PaymentLink:
    """Created Stripe payment link."""
    id: str
    url: str


class StripeGateway:
    """
    Stripe operations used by account signup and invoice billing.

    Usage:
        gateway = get_payment_gateway()
        customer_id = await gateway.create_customer(email, name, metadata)
    """

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key or settings.stripe_secret_key
        self.timeout = timeout or settings.provider_timeout_seconds

    async def _call(self, operation: str, fn: Callable[..., Any], **params: Any) -> Any:
        if not self.api_key:
            raise PaymentGatewayError("Payment provider not configured")

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, api_key=self.api_key, **params),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Stripe {operation} timed out after {self.timeout}s")
            raise PaymentGatewayError(f"Payment provider timed out ({operation})") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe {operation} failed: {e}")
            raise PaymentGatewayError(
                f"Payment provider error ({operation})",
                details={"stripe_error": getattr(e, "user_message", None) or str(e)},
            ) from e

    # === Customers ===

    async def create_customer(
        self,
        email: Optional[str],
        name: str,
        metadata: dict[str, str],
        phone: Optional[str] = None,
    ) -> str:
        """Create a customer and return its id."""
        params: dict[str, Any] = {"email": email, "name": name, "metadata": metadata}
        if phone:
            params["phone"] = phone
        customer = await self._call("customer.create", stripe.Customer.create, **params)
        logger.info(f"Stripe customer created: {customer.id}")
        return customer.id

    async def delete_customer(self, customer_id: str) -> None:
        await self._call("customer.delete", stripe.Customer.delete, sid=customer_id)
        logger.info(f"Stripe customer deleted: {customer_id}")

    # === Subscriptions ===

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_days: int,
        metadata: dict[str, str],
    ) -> Any:
        """Create a trialing subscription on ``price_id``."""
        subscription = await self._call(
            "subscription.create",
            stripe.Subscription.create,
            customer=customer_id,
            items=[{"price": price_id}],
            trial_period_days=trial_days,
            payment_behavior="default_incomplete",
            metadata=metadata,
        )
        logger.info(f"Stripe subscription created: {subscription.id} ({subscription.status})")
        return subscription

    async def cancel_subscription(self, subscription_id: str) -> None:
        await self._call(
            "subscription.cancel",
            stripe.Subscription.cancel,
            subscription_exposed_id=subscription_id,
        )
        logger.info(f"Stripe subscription canceled: {subscription_id}")

    # === Payment links ===

    async def create_payment_link(
        self,
        amount_cents: int,
        product_name: str,
        product_description: str,
        metadata: dict[str, str],
        success_url: str,
    ) -> PaymentLink:
        """Create a one-off payment link for ``amount_cents`` USD."""
        link = await self._call(
            "payment_link.create",
            stripe.PaymentLink.create,
            line_items=[
                {
                    "price_data": {
                        "currency": "usd",
                        "product_data": {
                            "name": product_name,
                            "description": product_description,
                        },
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            metadata=metadata,
            after_completion={
                "type": "redirect",
                "redirect": {"url": success_url},
            },
            allow_promotion_codes=False,
            billing_address_collection="auto",
            customer_creation="if_required",
            phone_number_collection={"enabled": True},
        )
        logger.info(f"Stripe payment link created: {link.id}")
        return PaymentLink(id=link.id, url=link.url)


_gateway: Optional[StripeGateway] = None


def get_payment_gateway() -> StripeGateway:
    """Get Stripe gateway singleton."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway
