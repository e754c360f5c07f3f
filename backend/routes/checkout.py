"""
Checkout routes - Stripe Checkout Session creation from a storefront cart
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from core.database import get_db
from core.dependencies import get_stripe_gateway
from core.stripe_client import StripeGateway
from schemas.cart import CheckoutRequest, CheckoutResponse
from services.checkout import CheckoutService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("", response_model=CheckoutResponse)
async def create_checkout_session(
    payload: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway)
):
    """
    Revalidate the cart against the catalog and open a Stripe Checkout Session.
    A stale cart is answered with 409 and one message per outdated line.
    """
    logger.info(f"🛒 Checkout requested for {len(payload.items)} item(s)")
    checkout_service = CheckoutService(db, gateway)
    return await checkout_service.create_checkout_session(payload.items)
