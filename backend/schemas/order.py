from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from urllib.parse import urlparse


def logo_filename(logo_url: str) -> str:
    """https://cdn.example.com/uploads/logo.png?v=2 -> logo.png"""
    path = urlparse(logo_url).path or logo_url
    return path.rstrip("/").split("/")[-1] or "logo"


class OrderItem(BaseModel):
    name: str
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    customization_text: Optional[str] = None
    customization_logo: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def info(self) -> Optional[str]:
        """Human readable customization summary, e.g. 'Texte: "Joyeux anniversaire" | Logo: logo.png'."""
        parts = []
        if self.customization_text:
            parts.append(f'Texte: "{self.customization_text}"')
        if self.customization_logo:
            parts.append(f"Logo: {logo_filename(self.customization_logo)}")
        return " | ".join(parts) if parts else None


class ShippingAddress(BaseModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class OrderConfirmation(BaseModel):
    """Order details rebuilt from the completed Stripe session, never from the cart."""
    session_id: str
    customer_email: str
    customer_name: str = "Client"
    order_number: str
    items: List[OrderItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    currency: str = "eur"
    shipping_address: Optional[ShippingAddress] = None
    invoice_url: Optional[str] = None
    order_date: datetime = Field(default_factory=datetime.now)
