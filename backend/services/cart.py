"""
Cart revalidation - checks a client-submitted cart against the catalog before checkout
"""
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Union
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from core.utils.money import format_price, prices_match
from models.catalog import Product, Engraving
from schemas.cart import CartItem
from services.catalog import CatalogStore, parse_entity_id
from services.customization import MAX_CUSTOMIZATIONS

logger = logging.getLogger(__name__)


@dataclass
class CartAccepted:
    """Every line matched the catalog; items can now be trusted for session building."""
    items: List[CartItem]
    products: Dict[UUID, Product] = field(default_factory=dict)
    addons: Dict[UUID, Engraving] = field(default_factory=dict)
    accepted: bool = True

    def product_for(self, item: CartItem) -> Product:
        return self.products[parse_entity_id(item.id)]

    def addon_for(self, item: CartItem) -> Engraving:
        return self.addons[parse_entity_id(item.customization.addon_id)]


@dataclass
class CartRejected:
    """One human-readable message per violation; the cart is refused as a whole."""
    errors: List[str]
    accepted: bool = False


CartValidationResult = Union[CartAccepted, CartRejected]


def _check_entity(label: str, entity, client_price) -> List[str]:
    if entity is None:
        return [f'"{label}" is no longer available']
    if not entity.is_published:
        return [f'"{label}" is no longer for sale']
    if not prices_match(entity.price, client_price):
        return [f'"{label}": price changed {format_price(client_price)} → {format_price(entity.price)}']
    return []


class CartValidationService:
    def __init__(self, db: AsyncSession):
        self.products = CatalogStore(db, Product)
        self.engravings = CatalogStore(db, Engraving)

    async def revalidate(self, items: Sequence[CartItem]) -> CartValidationResult:
        """
        Re-fetch every referenced product and engraving and compare availability and price.
        All violations are collected so the storefront can show the complete diff.
        """
        if not items:
            return CartRejected(errors=["The cart is empty"])

        products = {
            entity.id: entity
            for entity in await self.products.find_many(ids=[item.id for item in items])
        }
        addon_ids = [item.customization.addon_id for item in items if item.customization]
        addons = {
            entity.id: entity
            for entity in await self.engravings.find_many(ids=addon_ids)
        } if addon_ids else {}

        errors: List[str] = []
        if len(addon_ids) > MAX_CUSTOMIZATIONS:
            errors.append(f"A cart can hold at most {MAX_CUSTOMIZATIONS} customizations")

        for item in items:
            product_id = parse_entity_id(item.id)
            errors.extend(_check_entity(item.name, products.get(product_id), item.price))

            customization = item.customization
            if customization is not None:
                addon = addons.get(parse_entity_id(customization.addon_id))
                errors.extend(_check_entity(f"{customization.label} ({item.name})", addon, customization.price))

        if errors:
            logger.info(f"🛒 Cart rejected with {len(errors)} violation(s): {errors}")
            return CartRejected(errors=errors)

        return CartAccepted(items=list(items), products=products, addons=addons)
