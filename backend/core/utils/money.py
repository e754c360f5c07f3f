"""
Currency helpers. Amounts move between the catalog (decimal major units) and
the payment provider (integer minor units).
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Amount = Union[Decimal, float, int, str]

# Tolerance between a client-asserted price and the catalog price.
PRICE_TOLERANCE = Decimal("0.01")


def to_decimal(amount: Amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    # str() first so 12.1 becomes Decimal("12.1") rather than its binary expansion
    return Decimal(str(amount))


def to_minor_units(amount: Amount) -> int:
    """round(amount * 100) with half-up rounding, e.g. 12.005 -> 1201."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount or 0) / 100).quantize(Decimal("0.01"))


def prices_match(server_price: Amount, client_price: Amount) -> bool:
    return abs(to_decimal(server_price) - to_decimal(client_price)) <= PRICE_TOLERANCE


def format_price(amount: Amount) -> str:
    """12 -> '12.00€'"""
    return f"{to_decimal(amount).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}€"
