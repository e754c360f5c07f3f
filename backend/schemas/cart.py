from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import List, Optional

MAX_CART_LINES = 50
MAX_QUANTITY = 99
# Stripe metadata values are limited to 500 characters
MAX_CUSTOMIZATION_TEXT = 200
MAX_URL_LENGTH = 500


class Customization(BaseModel):
    """Per-order personalization (engraving) attached to one cart line."""
    addon_id: str = Field(..., min_length=1, description="Engraving entity id")
    label: str = Field(..., min_length=1, max_length=250)
    price: Decimal = Field(..., gt=0)
    text: Optional[str] = Field(default=None, max_length=MAX_CUSTOMIZATION_TEXT)
    logo_url: Optional[str] = Field(default=None, max_length=MAX_URL_LENGTH)

    @field_validator('text')
    @classmethod
    def empty_text_to_none(cls, value: Optional[str]) -> Optional[str]:
        # Engraving text is reproduced exactly as typed, spaces included
        return value or None

    @field_validator('logo_url')
    @classmethod
    def blank_url_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class CartItem(BaseModel):
    """Client-submitted cart line. Untrusted until revalidated against the catalog."""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=250)
    price: Decimal = Field(..., gt=0)
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY)
    image: Optional[str] = Field(default=None, max_length=MAX_URL_LENGTH)
    description: Optional[str] = None
    customization: Optional[Customization] = None

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, value):
        # Storefronts may send numeric ids
        return str(value) if isinstance(value, int) else value


class CheckoutRequest(BaseModel):
    items: List[CartItem] = Field(..., min_length=1, max_length=MAX_CART_LINES)


class CheckoutResponse(BaseModel):
    id: str
    url: Optional[str] = None
