from sqlalchemy import Column, String, Text, Numeric, JSON, DateTime
from typing import Any, Dict, List, Optional
from core.database import BaseModel, CHAR_LENGTH

# Stripe accepts up to 5000 characters, the storefront keeps descriptions short.
PROVIDER_DESCRIPTION_LIMIT = 500
ENGRAVING_MARKER = "[Gravure]"


def rich_text_to_string(value: Any) -> str:
    """Flatten a rich-text block list ([{children: [{text}]}]) into plain text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value[:PROVIDER_DESCRIPTION_LIMIT]
    if isinstance(value, list):
        lines = []
        for block in value:
            if not isinstance(block, dict):
                continue
            children = block.get("children") or []
            lines.append("".join(child.get("text", "") for child in children if isinstance(child, dict)))
        return "\n".join(lines).strip()[:PROVIDER_DESCRIPTION_LIMIT]
    return ""


def absolute_url(url: Optional[str], base_url: str) -> Optional[str]:
    if not url:
        return None
    if url.startswith(("http://", "https://")):
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


class CatalogEntityMixin:
    """Columns and provider payload helpers shared by every sellable catalog entity."""

    # Linkage columns are written only by the catalog sync bridge.
    LINKAGE_FIELDS = ("stripe_product_id", "stripe_price_id")
    PUBLISH_FIELD = "published_at"

    price = Column(Numeric(10, 2), nullable=False)
    published_at = Column(DateTime(timezone=True), nullable=True)
    stripe_product_id = Column(String(CHAR_LENGTH), nullable=True, index=True)
    stripe_price_id = Column(String(CHAR_LENGTH), nullable=True)

    @property
    def is_published(self) -> bool:
        return self.published_at is not None

    @property
    def has_linkage(self) -> bool:
        return bool(self.stripe_product_id)

    @property
    def display_name(self) -> str:
        raise NotImplementedError

    @property
    def provider_name(self) -> str:
        return self.display_name

    def provider_description(self) -> str:
        raise NotImplementedError

    def provider_images(self, media_base_url: str) -> List[str]:
        return []

    def provider_metadata(self) -> Dict[str, str]:
        return {"internal_id": str(self.id)}

    def price_metadata(self) -> Dict[str, str]:
        return {"internal_product_id": str(self.id)}


class Product(CatalogEntityMixin, BaseModel):
    __tablename__ = "products"
    __table_args__ = {'extend_existing': True}

    name = Column(String(CHAR_LENGTH), nullable=False, index=True)
    slug = Column(String(CHAR_LENGTH), nullable=True, unique=True)
    # Plain string or rich-text block list as stored by the content editor
    description = Column(JSON, nullable=True)
    image_url = Column(String(500), nullable=True)

    @property
    def display_name(self) -> str:
        return self.name

    def provider_description(self) -> str:
        return rich_text_to_string(self.description) or f"{self.name} - Disponible sur notre boutique"

    def provider_images(self, media_base_url: str) -> List[str]:
        url = absolute_url(self.image_url, media_base_url)
        return [url] if url else []

    def provider_metadata(self) -> Dict[str, str]:
        return {"internal_id": str(self.id), "slug": self.slug or ""}

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "slug": self.slug,
            "price": float(self.price) if self.price is not None else None,
            "image_url": self.image_url,
            "published": self.is_published,
            "stripe_product_id": self.stripe_product_id,
            "stripe_price_id": self.stripe_price_id,
        }


class Engraving(CatalogEntityMixin, BaseModel):
    """Engraving add-on, sold as a customization attached to a product line."""
    __tablename__ = "engravings"
    __table_args__ = {'extend_existing': True}

    title = Column(String(CHAR_LENGTH), nullable=False)
    description = Column(Text, nullable=True)

    @property
    def display_name(self) -> str:
        return self.title

    @property
    def provider_name(self) -> str:
        return f"{ENGRAVING_MARKER} {self.title}"

    def provider_description(self) -> str:
        return rich_text_to_string(self.description) or f"{self.title} - Option de gravure disponible"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "title": self.title,
            "price": float(self.price) if self.price is not None else None,
            "published": self.is_published,
            "stripe_product_id": self.stripe_product_id,
            "stripe_price_id": self.stripe_price_id,
        }
