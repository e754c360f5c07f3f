"""
Tests for the catalog resync script
"""
import pytest
from unittest.mock import patch

from scripts.sync_stripe_products import parse_args, sync_catalog


class TestParseArgs:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("FORCE_RESYNC", raising=False)
        monkeypatch.delenv("UPDATE_PRICES", raising=False)

        args = parse_args([])

        assert args.force_resync is False
        assert args.update_prices is False
        assert args.only is None

    def test_environment_flags(self, monkeypatch):
        monkeypatch.setenv("FORCE_RESYNC", "true")
        monkeypatch.setenv("UPDATE_PRICES", "1")

        args = parse_args([])

        assert args.force_resync is True
        assert args.update_prices is True

    def test_command_line_flags(self, monkeypatch):
        monkeypatch.delenv("FORCE_RESYNC", raising=False)

        args = parse_args(["--force-resync", "--only", "engravings"])

        assert args.force_resync is True
        assert args.only == "engravings"

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(["--only", "blog"])


@pytest.mark.asyncio
class TestSyncCatalog:

    async def test_links_every_unlinked_entity(self, db_engine, db_session, mug, engraving, sync_service, fake_gateway):
        from sqlalchemy.ext.asyncio import AsyncSession
        from sqlalchemy.orm import sessionmaker

        session_factory = sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
        with patch("scripts.sync_stripe_products.db_manager") as mock_manager:
            mock_manager.session_factory = session_factory
            results = await sync_catalog(parse_args([]), sync_service=sync_service)

        assert results["products"]["created"] == 1
        assert results["engravings"]["created"] == 1
        assert results["products"]["errors"] == results["engravings"]["errors"] == 0
        assert len(fake_gateway.products) == 2

    async def test_only_one_kind(self, db_engine, mug, engraving, sync_service, fake_gateway):
        from sqlalchemy.ext.asyncio import AsyncSession
        from sqlalchemy.orm import sessionmaker

        session_factory = sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
        with patch("scripts.sync_stripe_products.db_manager") as mock_manager:
            mock_manager.session_factory = session_factory
            results = await sync_catalog(parse_args(["--only", "products"]), sync_service=sync_service)

        assert list(results) == ["products"]
        assert [p["name"] for p in fake_gateway.products.values()] == ["Mug"]
