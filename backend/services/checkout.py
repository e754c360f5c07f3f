"""
Checkout session building - turns a revalidated cart into a Stripe Checkout Session
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import CartValidationException
from core.stripe_client import StripeGateway, stripe_field
from core.utils.logging import structured_logger
from core.utils.money import to_minor_units
from models.catalog import CatalogEntityMixin, absolute_url
from schemas.cart import CartItem, CheckoutResponse
from services.cart import CartAccepted, CartRejected, CartValidationService
from services.customization import (
    CustomizationEntry,
    customization_line_name,
    encode_session_metadata,
    line_item_metadata,
)
from services.shipping import ShippingPolicy, ShippingService

logger = logging.getLogger(__name__)

SESSION_SOURCE = "ekom-front"


class CheckoutSessionBuilder:
    """
    Pure transformation from an accepted cart and a shipping policy to the
    parameters of ``stripe.checkout.Session.create``. No I/O happens here.
    """

    def __init__(
        self,
        currency: Optional[str] = None,
        locale: Optional[str] = None,
        ttl_minutes: Optional[int] = None,
        frontend_url: Optional[str] = None,
        media_base_url: Optional[str] = None,
    ):
        self.currency = currency or settings.CHECKOUT_CURRENCY
        self.locale = locale or settings.CHECKOUT_LOCALE
        self.ttl_minutes = ttl_minutes or settings.CHECKOUT_SESSION_TTL_MINUTES
        self.frontend_url = (frontend_url or settings.FRONTEND_URL).rstrip("/")
        self.media_base_url = media_base_url or settings.MEDIA_BASE_URL

    def product_line(self, item: CartItem, entity: CatalogEntityMixin) -> Dict[str, Any]:
        if entity.stripe_price_id:
            logger.debug(f"Using Stripe price {entity.stripe_price_id} for \"{item.name}\"")
            return {"price": entity.stripe_price_id, "quantity": item.quantity}

        logger.info(f"⚠️ No Stripe price for \"{item.name}\", using an inline price")
        product_data: Dict[str, Any] = {
            "name": entity.provider_name,
            "metadata": entity.provider_metadata(),
        }
        if item.description:
            product_data["description"] = item.description[:500]
        image = absolute_url(item.image, self.media_base_url)
        if not image:
            images = entity.provider_images(self.media_base_url)
            image = images[0] if images else None
        if image:
            product_data["images"] = [image]

        return {
            "price_data": {
                "currency": self.currency,
                "unit_amount": to_minor_units(entity.price),
                "product_data": product_data,
            },
            "quantity": item.quantity,
        }

    def customization_line(
        self, item: CartItem, target_name: str, addon: CatalogEntityMixin
    ) -> Tuple[Dict[str, Any], CustomizationEntry]:
        customization = item.customization
        entry = CustomizationEntry(
            target_name=target_name,
            text=customization.text,
            logo_url=customization.logo_url,
        )
        # Free text differs per order, so this line is always priced inline
        line = {
            "price_data": {
                "currency": self.currency,
                "unit_amount": to_minor_units(addon.price),
                "product_data": {
                    "name": customization_line_name(target_name),
                    "description": customization.label,
                    "metadata": line_item_metadata(entry),
                },
            },
            "quantity": item.quantity,
        }
        return line, entry

    def build_line_items(self, cart: CartAccepted) -> Tuple[List[Dict[str, Any]], List[CustomizationEntry]]:
        """Line items in cart order, each customization right after its product."""
        line_items: List[Dict[str, Any]] = []
        entries: List[CustomizationEntry] = []
        for item in cart.items:
            product = cart.product_for(item)
            line_items.append(self.product_line(item, product))
            if item.customization is not None:
                line, entry = self.customization_line(item, product.display_name, cart.addon_for(item))
                line_items.append(line)
                entries.append(entry)
        return line_items, entries

    def session_metadata(self, cart: CartAccepted, entries: List[CustomizationEntry], now: datetime) -> Dict[str, str]:
        metadata = {
            "source": SESSION_SOURCE,
            "timestamp": now.isoformat(),
            "items_count": str(len(cart.items)),
        }
        metadata.update(encode_session_metadata(entries))
        return metadata

    def build(self, cart: CartAccepted, shipping: ShippingPolicy, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        line_items, entries = self.build_line_items(cart)

        params: Dict[str, Any] = {
            "mode": "payment",
            "line_items": line_items,
            "success_url": f"{self.frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self.frontend_url}/cancel",
            "metadata": self.session_metadata(cart, entries, now),
            "payment_method_types": ["card"],
            "billing_address_collection": "required",
            "locale": self.locale,
            "currency": self.currency,
            "allow_promotion_codes": True,
            "invoice_creation": {"enabled": True},
            "expires_at": int((now + timedelta(minutes=self.ttl_minutes)).timestamp()),
        }
        params.update(shipping.session_params())
        return params


class CheckoutService:
    def __init__(
        self,
        db: AsyncSession,
        gateway: StripeGateway,
        builder: Optional[CheckoutSessionBuilder] = None,
    ):
        self.gateway = gateway
        self.cart_validator = CartValidationService(db)
        self.shipping = ShippingService(gateway)
        self.builder = builder or CheckoutSessionBuilder()

    async def create_checkout_session(self, items: List[CartItem]) -> CheckoutResponse:
        """
        Revalidate the cart, then create the Stripe session.
        Raises CartValidationException on a stale cart; provider errors propagate
        as ExternalServiceException.
        """
        result = await self.cart_validator.revalidate(items)
        if isinstance(result, CartRejected):
            raise CartValidationException(errors=result.errors)

        policy = await self.shipping.get_shipping_policy()
        params = self.builder.build(result, policy)
        session = await self.gateway.create_checkout_session(params)

        session_id = stripe_field(session, "id")
        logger.info(f"✅ Stripe session created: {session_id} ({len(params['line_items'])} line items)")
        structured_logger.info(
            message="Checkout session created",
            session_id=session_id,
            metadata={
                "items_count": len(items),
                "line_items": len(params["line_items"]),
                "shipping_options": len(policy.rate_ids),
            },
        )
        return CheckoutResponse(id=session_id, url=stripe_field(session, "url"))
