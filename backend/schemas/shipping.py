from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from decimal import Decimal
from typing import Dict, List, Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FixedAmount(CamelModel):
    amount: Decimal
    currency: str


class DeliveryEstimateBound(CamelModel):
    unit: str
    value: int


class DeliveryEstimate(CamelModel):
    minimum: Optional[DeliveryEstimateBound] = None
    maximum: Optional[DeliveryEstimateBound] = None


class ShippingRateOut(CamelModel):
    """Client-friendly view of an active Stripe shipping rate."""
    id: str
    display_name: Optional[str] = None
    type: Optional[str] = None
    fixed_amount: Optional[FixedAmount] = None
    free_shipping_threshold: Optional[Decimal] = None
    delivery_estimate: Optional[DeliveryEstimate] = None
    metadata: Dict[str, str] = {}


class ShippingRatesResponse(CamelModel):
    rates: List[ShippingRateOut]
