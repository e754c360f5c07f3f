"""
Order notification dispatcher - renders and sends the confirmation email
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional
import asyncio
import logging

import aiohttp

from core.config import settings
from core.utils.messages.email import EmailAttachment, render_mail_type, send_email_mailgun
from schemas.order import OrderConfirmation

logger = logging.getLogger(__name__)

MailSender = Callable[..., Awaitable[Dict[str, Any]]]


def order_confirmation_subject(order: OrderConfirmation) -> str:
    return f"Confirmation de commande #{order.order_number}"


def invoice_filename(order: OrderConfirmation) -> str:
    return f"Facture-{order.order_number}.pdf"


class EmailService:
    """
    Best-effort delivery of order confirmations. Returns True when Mailgun
    accepted the message; failures are logged and reported as False.
    """

    def __init__(self, sender: Optional[MailSender] = None, timeout_seconds: int = 30):
        self._sender = sender
        self.timeout_seconds = timeout_seconds

    async def fetch_invoice(self, order: OrderConfirmation) -> Optional[EmailAttachment]:
        """Download the invoice PDF. Any failure yields None; the email goes out without it."""
        if not order.invoice_url:
            return None
        try:
            logger.info(f"📥 Downloading invoice for order {order.order_number}")
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    order.invoice_url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
                ) as response:
                    if response.status != 200:
                        logger.warning(f"⚠️ Invoice download failed ({response.status}) for order {order.order_number}")
                        return None
                    content = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"⚠️ Invoice download failed for order {order.order_number}: {e}")
            return None

        return EmailAttachment(
            filename=invoice_filename(order),
            content=content,
            content_type="application/pdf",
        )

    def render_order_confirmation(self, order: OrderConfirmation, has_invoice: bool = False) -> str:
        return render_mail_type("order_confirmation", {
            "order": order,
            "has_invoice": has_invoice,
            "support_email": settings.EMAIL_REPLY_TO,
            "shop_name": settings.SHOP_NAME,
        })

    async def send_order_confirmation(self, order: OrderConfirmation) -> bool:
        try:
            attachment = await self.fetch_invoice(order)
            attachments: List[EmailAttachment] = [attachment] if attachment else []
            html_body = self.render_order_confirmation(order, has_invoice=bool(attachments))

            send = self._sender or send_email_mailgun
            await send(
                to_email=order.customer_email,
                subject=order_confirmation_subject(order),
                html_body=html_body,
                reply_to=settings.EMAIL_REPLY_TO,
                attachments=attachments,
            )
            logger.info(f"✅ Confirmation email sent to {order.customer_email} for order {order.order_number}")
            return True
        except Exception as e:
            logger.error(f"❌ Failed to send confirmation email for order {order.order_number}: {e}", exc_info=True)
            return False
