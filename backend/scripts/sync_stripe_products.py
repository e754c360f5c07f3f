#!/usr/bin/env python3
"""
Script to sync every catalog product and engraving to Stripe

Usage:
    python scripts/sync_stripe_products.py [--force-resync] [--update-prices] [--only products|engravings]

FORCE_RESYNC=true and UPDATE_PRICES=true in the environment work as the matching flags.
"""

import argparse
import asyncio
import logging
import sys
import os

# Add the backend directory to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import settings
from core.database import db_manager, initialize_db
from core.logging_config import setup_logging
from models.catalog import Product, Engraving
from services.catalog import CatalogStore, LifecycleRegistry
from services.catalog_sync import CatalogSyncService, SyncStats

logger = logging.getLogger("scripts.sync_stripe_products")

MODELS = {
    "products": Product,
    "engravings": Engraving,
}


def env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sync catalog products and engravings to Stripe")
    parser.add_argument("--force-resync", action="store_true", default=env_flag("FORCE_RESYNC"),
                        help="Create new Stripe products even for entities already linked")
    parser.add_argument("--update-prices", action="store_true", default=env_flag("UPDATE_PRICES"),
                        help="Re-check linked prices and rotate the ones that drifted")
    parser.add_argument("--only", choices=sorted(MODELS), default=None,
                        help="Restrict the run to one catalog kind")
    return parser.parse_args(argv)


async def sync_catalog(args: argparse.Namespace, sync_service: CatalogSyncService = None) -> dict:
    """Run the sync over each selected model and return per-model stats."""
    sync_service = sync_service or CatalogSyncService()
    selected = [args.only] if args.only else list(MODELS)
    results = {}

    async with db_manager.session_factory() as db:
        for key in selected:
            # No lifecycle hooks: the linkage writes below must not re-enter the sync
            store = CatalogStore(db, MODELS[key], registry=LifecycleRegistry())
            stats: SyncStats = await sync_service.sync_all(
                store,
                force_resync=args.force_resync,
                update_prices=args.update_prices,
            )
            results[key] = stats.as_dict()
    return results


async def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(settings.LOG_LEVEL)
    initialize_db(settings.SQLALCHEMY_DATABASE_URI)

    logger.info("🚀 Starting Stripe catalog sync")
    try:
        results = await sync_catalog(args)
    finally:
        await db_manager.dispose()

    for key, stats in results.items():
        logger.info(
            f"📊 {key}: total={stats['total']} created={stats['created']} "
            f"updated={stats['updated']} skipped={stats['skipped']} errors={stats['errors']}"
        )
    return 1 if any(stats["errors"] for stats in results.values()) else 0


def cli():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
