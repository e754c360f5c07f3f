"""
Webhook Routes - Stripe webhook handling without storage
"""
from fastapi import APIRouter, Request, Depends
import logging

from core.dependencies import get_email_service, get_stripe_gateway
from core.stripe_client import StripeGateway
from services.email import EmailService
from services.webhooks import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    email_service: EmailService = Depends(get_email_service)
):
    """
    Handle Stripe webhooks with signature verification.
    The signature is checked against the raw body, so the payload is read as bytes.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    webhook_service = WebhookService(gateway, email_service)
    return await webhook_service.handle_stripe_webhook(
        request_body=payload,
        signature=sig_header
    )


@router.get("/health")
async def webhook_health():
    """Health check endpoint for webhook service"""
    return {"status": "healthy", "service": "webhooks"}
