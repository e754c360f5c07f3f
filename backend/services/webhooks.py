"""
Webhook Service - Stripe webhook handling with signature verification
Rebuilds the order from the completed Checkout Session and sends the confirmation email.
Nothing is stored: a redelivered event is processed again.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from core.stripe_client import StripeGateway, stripe_field, stripe_id
from core.utils.logging import structured_logger
from core.utils.money import from_minor_units
from schemas.order import OrderConfirmation, OrderItem, ShippingAddress
from services.customization import CustomizationEntry, CustomizationLookup, target_from_line_name
from services.email import EmailService

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
# shipping_details is returned inline; only the rate behind shipping_cost needs expanding
SESSION_EXPAND = [
    "line_items.data.price.product",
    "shipping_cost.shipping_rate",
]


def order_number_for(session_id: str, today: Optional[datetime] = None) -> str:
    """CMD-20250114-A1B2C3D4: order date plus the tail of the session id."""
    today = today or datetime.now()
    return f"CMD-{today:%Y%m%d}-{session_id[-8:].upper()}"


def _line_name(line_item: Any) -> str:
    product = stripe_field(stripe_field(line_item, "price"), "product")
    if product is not None and not isinstance(product, str):
        name = stripe_field(product, "name")
        if name:
            return name
    return stripe_field(line_item, "description", "Article")


def _customization_from_product(line_item: Any) -> Optional[CustomizationEntry]:
    """Fallback when the session metadata does not cover a customization line."""
    product = stripe_field(stripe_field(line_item, "price"), "product")
    if product is None or isinstance(product, str):
        return None
    metadata = stripe_field(product, "metadata", {})
    text = stripe_field(metadata, "text")
    logo_url = stripe_field(metadata, "logo_url")
    if not text and not logo_url:
        return None
    return CustomizationEntry(
        target_name=stripe_field(metadata, "target", ""),
        text=text,
        logo_url=logo_url,
    )


def _shipping_address(session: Any) -> Optional[ShippingAddress]:
    details = (
        stripe_field(session, "shipping_details")
        or stripe_field(stripe_field(session, "collected_information"), "shipping_details")
    )
    address = stripe_field(details, "address") or stripe_field(stripe_field(session, "customer_details"), "address")
    if not address:
        return None
    return ShippingAddress(
        line1=stripe_field(address, "line1"),
        line2=stripe_field(address, "line2"),
        city=stripe_field(address, "city"),
        postal_code=stripe_field(address, "postal_code"),
        country=stripe_field(address, "country"),
    )


def _shipping_amount(session: Any) -> int:
    amount = stripe_field(stripe_field(session, "total_details"), "amount_shipping")
    if amount is None:
        amount = stripe_field(stripe_field(session, "shipping_cost"), "amount_total", 0)
    return amount


class WebhookService:
    """
    Stripe webhook handling
    Only checkout.session.completed is acted upon; every verified event is acknowledged.
    """

    def __init__(self, gateway: StripeGateway, email_service: Optional[EmailService] = None):
        self.gateway = gateway
        self.email_service = email_service or EmailService()

    async def handle_stripe_webhook(self, request_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify, filter, rebuild and notify. Raises WebhookSignatureException on a bad
        signature; after that point every outcome is acknowledged with received=True.
        """
        event = self.gateway.construct_event(request_body, signature)
        event_id = stripe_field(event, "id")
        event_type = stripe_field(event, "type")

        if event_type != CHECKOUT_COMPLETED:
            logger.info(f"⏭️ Ignoring webhook event {event_id} of type {event_type}")
            return {"received": True}

        session_id = stripe_id(stripe_field(stripe_field(event, "data"), "object"))
        logger.info(f"💳 Payment completed for session {session_id} (event {event_id})")

        try:
            order = await self.build_order_confirmation(session_id)
        except Exception as e:
            logger.error(f"❌ Could not rebuild order for session {session_id}: {e}", exc_info=True)
            structured_logger.error(
                message="Order reconstruction failed",
                session_id=session_id,
                event_id=event_id,
                exception=e,
            )
            return {"received": True, "error": "order_reconstruction_failed"}

        if order is None:
            logger.warning(f"⚠️ No customer email on session {session_id}, confirmation not sent")
            return {"received": True}

        sent = await self.email_service.send_order_confirmation(order)
        structured_logger.info(
            message="Webhook processed",
            session_id=session_id,
            event_id=event_id,
            metadata={
                "order_number": order.order_number,
                "items": len(order.items),
                "email_sent": sent,
            },
        )
        if not sent:
            return {"received": True, "error": "notification_failed"}
        return {"received": True}

    async def build_order_confirmation(self, session_id: str) -> Optional[OrderConfirmation]:
        """Rebuild the order purely from Stripe data. None when the session has no customer email."""
        session = await self.gateway.retrieve_checkout_session(session_id, expand=SESSION_EXPAND)

        customer = stripe_field(session, "customer_details")
        customer_email = stripe_field(customer, "email") or stripe_field(session, "customer_email")
        if not customer_email:
            return None

        lookup = CustomizationLookup.from_session_metadata(stripe_field(session, "metadata", {}))
        line_items = stripe_field(stripe_field(session, "line_items"), "data", [])

        return OrderConfirmation(
            session_id=session_id,
            customer_email=customer_email,
            customer_name=stripe_field(customer, "name") or "Client",
            order_number=order_number_for(session_id),
            items=self.build_order_items(line_items, lookup),
            subtotal=from_minor_units(stripe_field(session, "amount_subtotal", 0)),
            shipping_cost=from_minor_units(_shipping_amount(session)),
            total=from_minor_units(stripe_field(session, "amount_total", 0)),
            currency=stripe_field(session, "currency", "eur"),
            shipping_address=_shipping_address(session),
            invoice_url=await self.fetch_invoice_url(session),
        )

    def build_order_items(self, line_items: List[Any], lookup: CustomizationLookup) -> List[OrderItem]:
        items = []
        for line_item in line_items:
            name = _line_name(line_item)
            quantity = stripe_field(line_item, "quantity", 1) or 1
            unit_price = (from_minor_units(stripe_field(line_item, "amount_total", 0)) / quantity).quantize(Decimal("0.01"))

            entry = None
            target = target_from_line_name(name)
            if target is not None:
                entry = lookup.take(target) or _customization_from_product(line_item)
                if entry is None:
                    logger.warning(f"⚠️ No customization details found for line \"{name}\"")

            items.append(OrderItem(
                name=name,
                quantity=quantity,
                unit_price=unit_price,
                customization_text=entry.text if entry else None,
                customization_logo=entry.logo_url if entry else None,
            ))
        return items

    async def fetch_invoice_url(self, session: Any) -> Optional[str]:
        invoice_id = stripe_id(stripe_field(session, "invoice"))
        if not invoice_id:
            return None
        try:
            invoice = await self.gateway.retrieve_invoice(invoice_id)
        except Exception as e:
            logger.warning(f"⚠️ Could not retrieve invoice {invoice_id}: {e}")
            return None
        return stripe_field(invoice, "invoice_pdf")
