"""
Stripe gateway - the single provider handle shared by catalog sync, checkout and webhooks
"""
from functools import lru_cache
from typing import Any, Dict, List, Optional
import logging

import stripe

from core.config import settings
from core.exceptions import (
    ConfigurationException,
    ExternalServiceException,
    WebhookSignatureException,
)

logger = logging.getLogger(__name__)


def stripe_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a Stripe object, an expanded sub-object or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(key, default)
    else:
        value = getattr(obj, key, default)
    return default if value is None else value


def stripe_id(obj: Any) -> Optional[str]:
    """Id of a field that may be either expanded (object) or collapsed (string id)."""
    if obj is None or isinstance(obj, str):
        return obj
    return stripe_field(obj, "id")


class StripeGateway:
    """
    Async facade over the Stripe resources used by this service.
    The API key is bound at construction and passed per request, so no
    module-level ``stripe.api_key`` is mutated and the instance is safe to share.
    """

    def __init__(self, api_key: Optional[str], webhook_secret: Optional[str] = None):
        if not api_key:
            raise ConfigurationException("STRIPE_SECRET_KEY")
        self._api_key = api_key
        self._webhook_secret = webhook_secret

    async def _call(self, operation: str, func, *args, **params):
        params = {key: value for key, value in params.items() if value is not None}
        try:
            return await func(*args, api_key=self._api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe {operation} failed: {e}")
            raise ExternalServiceException(
                message=f"Stripe error during {operation}: {e.user_message or str(e)}",
                service="stripe",
                provider_code=getattr(e, "code", None),
            ) from e

    # --- Products & prices -------------------------------------------------

    async def create_product(
        self,
        name: str,
        description: Optional[str] = None,
        images: Optional[List[str]] = None,
        metadata: Optional[Dict[str, str]] = None
    ):
        return await self._call(
            "product creation", stripe.Product.create_async,
            name=name, description=description, images=images or None, metadata=metadata,
        )

    async def retrieve_product(self, product_id: str):
        return await self._call("product retrieval", stripe.Product.retrieve_async, product_id)

    async def update_product(self, product_id: str, **fields):
        return await self._call("product update", stripe.Product.modify_async, product_id, **fields)

    async def archive_product(self, product_id: str):
        # Products with used prices cannot be deleted, only deactivated
        return await self._call("product archive", stripe.Product.modify_async, product_id, active=False)

    async def create_price(
        self,
        product_id: str,
        unit_amount: int,
        currency: str,
        metadata: Optional[Dict[str, str]] = None
    ):
        return await self._call(
            "price creation", stripe.Price.create_async,
            product=product_id, unit_amount=unit_amount, currency=currency, metadata=metadata,
        )

    async def retrieve_price(self, price_id: str):
        return await self._call("price retrieval", stripe.Price.retrieve_async, price_id)

    async def deactivate_price(self, price_id: str):
        return await self._call("price deactivation", stripe.Price.modify_async, price_id, active=False)

    # --- Checkout ----------------------------------------------------------

    async def create_checkout_session(self, params: Dict[str, Any]):
        return await self._call("checkout session creation", stripe.checkout.Session.create_async, **params)

    async def retrieve_checkout_session(self, session_id: str, expand: Optional[List[str]] = None):
        return await self._call(
            "checkout session retrieval", stripe.checkout.Session.retrieve_async,
            session_id, expand=expand,
        )

    async def list_shipping_rates(self, active: bool = True, limit: int = 100) -> List[Any]:
        rates = await self._call("shipping rate listing", stripe.ShippingRate.list_async, active=active, limit=limit)
        return list(stripe_field(rates, "data", []))

    async def retrieve_invoice(self, invoice_id: str):
        return await self._call("invoice retrieval", stripe.Invoice.retrieve_async, invoice_id)

    # --- Webhooks ----------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]):
        """Verify the signature against the raw body and parse the event."""
        if not self._webhook_secret:
            raise ConfigurationException("STRIPE_WEBHOOK_SECRET")
        if not signature:
            raise WebhookSignatureException("Missing Stripe signature")
        try:
            return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise WebhookSignatureException("Invalid payload") from e
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid webhook signature: {e}")
            raise WebhookSignatureException(f"Webhook Error: {e}") from e


@lru_cache(maxsize=1)
def get_payment_gateway() -> StripeGateway:
    """
    Process-wide gateway, built on first use. A missing secret surfaces here as a
    ConfigurationException and is not cached, so the next request retries.
    """
    return StripeGateway(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
