"""
Shipping routes - public read-only view of the active Stripe shipping rates
"""
from fastapi import APIRouter, Depends
import logging

from core.dependencies import get_stripe_gateway
from core.stripe_client import StripeGateway
from schemas.shipping import ShippingRatesResponse
from services.shipping import ShippingService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/shipping", tags=["shipping"])


@router.get("/rates", response_model=ShippingRatesResponse, response_model_by_alias=True)
async def get_shipping_rates(gateway: StripeGateway = Depends(get_stripe_gateway)):
    """
    Get all active shipping rates
    """
    shipping_service = ShippingService(gateway)
    rates = await shipping_service.get_client_rates()
    return ShippingRatesResponse(rates=rates)
