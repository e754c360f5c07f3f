"""
Tests for catalog storage and lifecycle events
"""
import pytest
from decimal import Decimal

from services.catalog import LifecycleAction
from models.catalog import Product, rich_text_to_string, PROVIDER_DESCRIPTION_LIMIT


@pytest.fixture
def recorded(registry):
    events = []

    async def hook(event):
        events.append(event)

    registry.subscribe(Product, hook)
    return events


@pytest.mark.unit
class TestCatalogStore:

    @pytest.mark.asyncio
    async def test_create_emits_after_create(self, product_store, recorded):
        product = await product_store.create({"name": "Mug", "price": Decimal("12.00")})

        assert [e.action for e in recorded] == [LifecycleAction.AFTER_CREATE]
        assert recorded[0].entity_id == product.id
        assert recorded[0].result is product

    @pytest.mark.asyncio
    async def test_update_reports_only_changed_fields(self, product_store, mug, recorded):
        await product_store.update(mug.id, {"name": "Mug", "price": Decimal("15.00")})

        event = recorded[-1]
        assert event.action == LifecycleAction.AFTER_UPDATE
        assert event.changed_fields == {"price"}
        assert event.system_write is False

    @pytest.mark.asyncio
    async def test_equal_decimal_is_not_a_change(self, product_store, mug, recorded):
        await product_store.update(mug.id, {"price": "12.0"})

        assert recorded[-1].changed_fields == set()

    @pytest.mark.asyncio
    async def test_system_write_marker_travels_on_event(self, product_store, mug, recorded):
        await product_store.update(mug.id, {"stripe_product_id": "prod_1"}, system_write=True)

        assert recorded[-1].system_write is True
        assert recorded[-1].changed_fields == {"stripe_product_id"}

    @pytest.mark.asyncio
    async def test_delete_emits_before_delete_with_row_id_only(self, product_store, mug, recorded):
        mug_id = mug.id

        assert await product_store.delete(mug_id) is True

        event = recorded[-1]
        assert event.action == LifecycleAction.BEFORE_DELETE
        assert event.entity_id == mug_id
        assert event.result is None
        assert await product_store.find_by_id(mug_id) is None

    @pytest.mark.asyncio
    async def test_find_many_with_filters_and_fields(self, product_store, mug):
        await product_store.create({"name": "Tote bag", "slug": "tote", "price": Decimal("20.00")})

        found = await product_store.find_many(filters={"slug": "tote"}, fields=["name", "price"])

        assert [p.name for p in found] == ["Tote bag"]

    @pytest.mark.asyncio
    async def test_find_first(self, product_store, mug):
        assert (await product_store.find_first(slug="mug")).id == mug.id
        assert await product_store.find_first(slug="nope") is None

    @pytest.mark.asyncio
    async def test_find_first_with_fields(self, product_store, mug):
        from sqlalchemy import inspect

        product_store.db.expunge_all()

        found = await product_store.find_first(fields=["name"], slug="mug")

        assert found.id == mug.id
        assert found.name == "Mug"
        assert "price" in inspect(found).unloaded

    @pytest.mark.asyncio
    async def test_unknown_ids(self, product_store):
        assert await product_store.find_by_id("not-a-uuid") is None
        assert await product_store.update("not-a-uuid", {"name": "x"}) is None
        assert await product_store.delete("not-a-uuid") is False


@pytest.mark.unit
class TestProviderPayload:

    def test_rich_text_blocks_are_flattened(self):
        blocks = [
            {"type": "paragraph", "children": [{"type": "text", "text": "Mug en "}, {"text": "céramique"}]},
            {"type": "paragraph", "children": [{"text": "350 ml"}]},
            "stray",
        ]

        assert rich_text_to_string(blocks) == "Mug en céramique\n350 ml"

    def test_description_is_capped(self):
        assert len(rich_text_to_string("x" * 2000)) == PROVIDER_DESCRIPTION_LIMIT

    def test_product_fallback_description_and_absolute_image(self):
        product = Product(name="Mug", slug="mug", image_url="/uploads/mug.png", description=None)

        assert product.provider_description() == "Mug - Disponible sur notre boutique"
        assert product.provider_images("https://cms.example.com/") == ["https://cms.example.com/uploads/mug.png"]
