from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence
import logging

from core.config import settings
from core.stripe_client import StripeGateway, stripe_field, stripe_id
from core.utils.money import from_minor_units
from schemas.shipping import DeliveryEstimate, DeliveryEstimateBound, FixedAmount, ShippingRateOut

logger = logging.getLogger(__name__)

ZONE_METADATA_KEY = "zone"
FREE_SHIPPING_METADATA_KEY = "free_shipping_threshold"
# Stripe Checkout accepts at most 5 shipping options per session
MAX_SHIPPING_OPTIONS = 5

EU_COUNTRIES = [
    "AT", "BE", "BG", "CY", "CZ", "DE", "DK", "EE", "ES", "FI", "FR", "GR", "HR", "HU",
    "IE", "IT", "LT", "LU", "LV", "MT", "NL", "PL", "PT", "RO", "SE", "SI", "SK",
]

SHIPPING_ZONES: Dict[str, List[str]] = {
    "france": ["FR", "MC"],
    "benelux": ["BE", "NL", "LU"],
    "europe": EU_COUNTRIES + ["CH", "MC", "NO", "GB"],
}


@dataclass
class ShippingPolicy:
    rate_ids: List[str] = field(default_factory=list)
    allowed_countries: List[str] = field(default_factory=list)

    def session_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "shipping_address_collection": {"allowed_countries": self.allowed_countries},
        }
        if self.rate_ids:
            params["shipping_options"] = [{"shipping_rate": rate_id} for rate_id in self.rate_ids]
        return params


def resolve_allowed_countries(rates: Sequence[Any], default_countries: Sequence[str]) -> List[str]:
    """Union of the zones tagged on the rates, in tag order; the default set when none is tagged."""
    countries: List[str] = []
    for rate in rates:
        zone = stripe_field(stripe_field(rate, "metadata", {}), ZONE_METADATA_KEY)
        if not zone:
            continue
        zone_countries = SHIPPING_ZONES.get(str(zone).strip().lower())
        if zone_countries is None:
            logger.warning(f"Unknown shipping zone \"{zone}\" on rate {stripe_id(rate)}")
            continue
        countries.extend(code for code in zone_countries if code not in countries)
    return countries or list(default_countries)


def _parse_threshold(value: Optional[str]) -> Optional[Decimal]:
    if not value:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _estimate_bound(bound: Any) -> Optional[DeliveryEstimateBound]:
    if not bound:
        return None
    return DeliveryEstimateBound(unit=stripe_field(bound, "unit"), value=stripe_field(bound, "value"))


def to_client_rate(rate: Any) -> ShippingRateOut:
    fixed = stripe_field(rate, "fixed_amount")
    estimate = stripe_field(rate, "delivery_estimate")
    metadata = stripe_field(rate, "metadata", {})
    metadata = {key: str(stripe_field(metadata, key)) for key in (metadata.keys() if metadata else [])}
    return ShippingRateOut(
        id=stripe_id(rate),
        display_name=stripe_field(rate, "display_name"),
        type=stripe_field(rate, "type"),
        fixed_amount=FixedAmount(
            amount=from_minor_units(stripe_field(fixed, "amount", 0)),
            currency=stripe_field(fixed, "currency", settings.CHECKOUT_CURRENCY),
        ) if fixed else None,
        free_shipping_threshold=_parse_threshold(metadata.get(FREE_SHIPPING_METADATA_KEY)),
        delivery_estimate=DeliveryEstimate(
            minimum=_estimate_bound(stripe_field(estimate, "minimum")),
            maximum=_estimate_bound(stripe_field(estimate, "maximum")),
        ) if estimate else None,
        metadata=metadata,
    )


class ShippingService:
    def __init__(self, gateway: StripeGateway, default_countries: Optional[Sequence[str]] = None):
        self.gateway = gateway
        self.default_countries = list(default_countries or settings.DEFAULT_SHIPPING_COUNTRIES)

    async def get_active_rates(self) -> List[Any]:
        return await self.gateway.list_shipping_rates(active=True, limit=100)

    async def get_shipping_policy(self) -> ShippingPolicy:
        """Shipping options and country allow-list for a new checkout session."""
        rates = await self.get_active_rates()
        rate_ids = [stripe_id(rate) for rate in rates]
        if len(rate_ids) > MAX_SHIPPING_OPTIONS:
            logger.warning(
                f"{len(rate_ids)} active shipping rates, only the first {MAX_SHIPPING_OPTIONS} are offered"
            )
            rate_ids = rate_ids[:MAX_SHIPPING_OPTIONS]
        return ShippingPolicy(
            rate_ids=rate_ids,
            allowed_countries=resolve_allowed_countries(rates, self.default_countries),
        )

    async def get_client_rates(self) -> List[ShippingRateOut]:
        rates = [to_client_rate(rate) for rate in await self.get_active_rates()]
        logger.info(f"✅ {len(rates)} shipping rates fetched from Stripe")
        return rates
