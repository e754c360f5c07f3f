"""
Catalog → Stripe synchronisation

Keeps one Stripe product and exactly one active Stripe price in step with each
catalog entity. Runs from storage lifecycle events and from the catalog-wide
resync script; provider failures are logged and never abort the catalog write.
"""
from dataclasses import dataclass, asdict
from typing import Callable, Iterable, Optional, Type
import asyncio
import logging

from core.config import settings
from core.stripe_client import StripeGateway, get_payment_gateway, stripe_field, stripe_id
from core.utils.money import to_minor_units
from models.catalog import Product, Engraving
from services.catalog import (
    CatalogStore,
    LifecycleAction,
    LifecycleEvent,
    LifecycleRegistry,
    catalog_lifecycle,
)

logger = logging.getLogger(__name__)

SYNCED_MODELS = (Product, Engraving)
IGNORED_FIELDS = {"updated_at", "created_at"}


@dataclass
class SyncStats:
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class CatalogSyncService:
    """Catalog sync bridge between catalog entities and Stripe products/prices."""

    def __init__(
        self,
        gateway_factory: Callable[[], StripeGateway] = get_payment_gateway,
        currency: Optional[str] = None,
        media_base_url: Optional[str] = None,
        delay_seconds: Optional[float] = None
    ):
        self._gateway_factory = gateway_factory
        self.currency = currency or settings.CHECKOUT_CURRENCY
        self.media_base_url = media_base_url or settings.MEDIA_BASE_URL
        self.delay_seconds = settings.STRIPE_SYNC_DELAY_SECONDS if delay_seconds is None else delay_seconds

    def register(self, registry: Optional[LifecycleRegistry] = None, models: Iterable[Type] = SYNCED_MODELS):
        registry = registry if registry is not None else catalog_lifecycle
        for model in models:
            registry.subscribe(model, self.handle_event)

    async def handle_event(self, event: LifecycleEvent):
        """Lifecycle entry point. Never raises: the storage write must go through."""
        handlers = {
            LifecycleAction.AFTER_CREATE: self.after_create,
            LifecycleAction.AFTER_UPDATE: self.after_update,
            LifecycleAction.BEFORE_DELETE: self.before_delete,
        }
        try:
            await handlers[event.action](event)
        except Exception as e:
            logger.error(
                f"❌ Stripe sync failed on {event.action.value} for "
                f"{event.model.__name__} {event.entity_id}: {e}",
                exc_info=True
            )

    # --- Lifecycle hooks ---------------------------------------------------

    async def after_create(self, event: LifecycleEvent):
        entity = event.result
        if entity.has_linkage:
            logger.info(f"⏭️  \"{entity.display_name}\" already linked to Stripe - skip afterCreate")
            return
        await self._create_linkage(event.store, entity)

    async def after_update(self, event: LifecycleEvent):
        if event.system_write:
            return

        changed = set(event.changed_fields) - IGNORED_FIELDS
        entity = event.result
        linkage_fields = set(entity.LINKAGE_FIELDS)
        # Publish toggles and linkage-only writes carry nothing Stripe needs to know
        if not changed or changed == {entity.PUBLISH_FIELD} or changed <= linkage_fields:
            return

        if not entity.has_linkage:
            logger.info(f"🔧 \"{entity.display_name}\" has no Stripe linkage - creating it now")
            await self._create_linkage(event.store, entity)
            return

        gateway = self._gateway_factory()
        if changed - {"price", entity.PUBLISH_FIELD} - linkage_fields:
            await gateway.update_product(entity.stripe_product_id, **self._product_fields(entity))
            logger.info(f"✅ \"{entity.display_name}\" updated in Stripe ({entity.stripe_product_id})")

        if "price" in changed:
            await self._rotate_price(event.store, entity, gateway)

    async def before_delete(self, event: LifecycleEvent):
        # The deletion event only carries the row id, load the entity before it disappears
        entity = await event.store.find_by_id(event.entity_id)
        if entity is None or not entity.has_linkage:
            return

        gateway = self._gateway_factory()
        if entity.stripe_price_id:
            await gateway.deactivate_price(entity.stripe_price_id)
        await gateway.archive_product(entity.stripe_product_id)
        logger.info(f"✅ \"{entity.display_name}\" archived in Stripe ({entity.stripe_product_id})")

    # --- Helpers -----------------------------------------------------------

    def _product_fields(self, entity) -> dict:
        fields = {
            "name": entity.provider_name,
            "description": entity.provider_description(),
            "metadata": entity.provider_metadata(),
        }
        images = entity.provider_images(self.media_base_url)
        if images:
            fields["images"] = images
        return fields

    async def _create_linkage(self, store: CatalogStore, entity):
        gateway = self._gateway_factory()
        product = await gateway.create_product(**self._product_fields(entity))
        price = await gateway.create_price(
            stripe_id(product),
            to_minor_units(entity.price),
            self.currency,
            metadata=entity.price_metadata(),
        )
        await store.update(
            entity.id,
            {"stripe_product_id": stripe_id(product), "stripe_price_id": stripe_id(price)},
            system_write=True,
        )
        logger.info(
            f"✅ \"{entity.display_name}\" created in Stripe: "
            f"product={stripe_id(product)} price={stripe_id(price)}"
        )

    async def _rotate_price(self, store: CatalogStore, entity, gateway: StripeGateway) -> bool:
        """
        Stripe prices are immutable: deactivate the current price and create a new one.
        Returns False when the stored Stripe amount already matches.
        """
        new_amount = to_minor_units(entity.price)
        old_price_id = entity.stripe_price_id

        if old_price_id:
            existing = await gateway.retrieve_price(old_price_id)
            if stripe_field(existing, "unit_amount") == new_amount:
                return False
            await gateway.deactivate_price(old_price_id)

        try:
            new_price = await gateway.create_price(
                entity.stripe_product_id, new_amount, self.currency, metadata=entity.price_metadata()
            )
        except Exception:
            if old_price_id:
                # Checkout falls back to an inline price until the next successful sync
                await store.update(entity.id, {"stripe_price_id": None}, system_write=True)
            raise

        await store.update(entity.id, {"stripe_price_id": stripe_id(new_price)}, system_write=True)
        logger.info(
            f"   → Price of \"{entity.display_name}\" now {new_amount / 100:.2f}€ "
            f"(new: {stripe_id(new_price)}, archived: {old_price_id})"
        )
        return True

    async def _abandon_price_change(
        self,
        store: CatalogStore,
        entity,
        gateway: StripeGateway,
        deactivated_price_id: Optional[str],
        orphan_product_id: Optional[str],
    ):
        """Undo the visible half of a failed price change before the error propagates."""
        if deactivated_price_id:
            # Checkout falls back to an inline price until the next successful sync
            await store.update(entity.id, {"stripe_price_id": None}, system_write=True)
        if orphan_product_id:
            try:
                await gateway.archive_product(orphan_product_id)
                logger.info(f"🗑️ Archived orphan product {orphan_product_id} of \"{entity.display_name}\"")
            except Exception as e:
                logger.error(f"❌ Could not archive orphan product {orphan_product_id}: {e}")

    # --- Catalog-wide resync -----------------------------------------------

    async def sync_entity(self, store: CatalogStore, entity, force_resync: bool = False, update_prices: bool = False) -> str:
        """Sync one entity; returns 'created', 'updated' or 'skipped'."""
        if entity.has_linkage and not force_resync and not update_prices:
            logger.info(f"⏭️  \"{entity.display_name}\" already synced ({entity.stripe_product_id})")
            return "skipped"

        gateway = self._gateway_factory()
        old_product_id = entity.stripe_product_id
        price_id = entity.stripe_price_id
        created = updated = False

        if not entity.has_linkage or force_resync:
            product = await gateway.create_product(**self._product_fields(entity))
            product_id = stripe_id(product)
            created = True
            logger.info(f"✅ Product created: \"{entity.display_name}\" ({product_id})")
        else:
            product_id = entity.stripe_product_id
            product = await gateway.retrieve_product(product_id)
            fields = self._product_fields(entity)
            if (stripe_field(product, "name") != fields["name"]
                    or stripe_field(product, "description") != fields["description"]):
                await gateway.update_product(product_id, **fields)
                updated = True
                logger.info(f"🔄 Product updated: \"{entity.display_name}\"")

        new_amount = to_minor_units(entity.price)
        needs_new_price = created or not price_id
        if not needs_new_price and update_prices:
            existing = await gateway.retrieve_price(price_id)
            needs_new_price = stripe_field(existing, "unit_amount") != new_amount

        if needs_new_price:
            if price_id:
                await gateway.deactivate_price(price_id)
            try:
                new_price = await gateway.create_price(
                    product_id, new_amount, self.currency, metadata=entity.price_metadata()
                )
            except Exception:
                await self._abandon_price_change(store, entity, gateway, price_id, product_id if created else None)
                raise
            logger.info(f"   → Price set: {new_amount / 100:.2f}€ ({stripe_id(new_price)})")
            price_id = stripe_id(new_price)
            updated = updated or not created

        if created and old_product_id and old_product_id != product_id:
            await gateway.archive_product(old_product_id)

        await store.update(
            entity.id,
            {"stripe_product_id": product_id, "stripe_price_id": price_id},
            system_write=True,
        )
        if created:
            return "created"
        return "updated" if updated else "skipped"

    async def sync_all(self, store: CatalogStore, force_resync: bool = False, update_prices: bool = False) -> SyncStats:
        """Sync every entity of the store's model, one at a time with a fixed pause between them."""
        stats = SyncStats()
        entities = await store.find_many()
        stats.total = len(entities)
        logger.info(
            f"🔄 Syncing {stats.total} {store.model.__name__} entities "
            f"(force_resync={force_resync}, update_prices={update_prices})"
        )

        for entity in entities:
            try:
                outcome = await self.sync_entity(store, entity, force_resync, update_prices)
                setattr(stats, outcome, getattr(stats, outcome) + 1)
            except Exception as e:
                stats.errors += 1
                logger.error(f"❌ Sync failed for \"{entity.display_name}\": {e}")
            if self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)

        logger.info(f"✨ Sync finished: {stats.as_dict()}")
        return stats


catalog_sync_service = CatalogSyncService()
