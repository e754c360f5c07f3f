# Services package - Consolidated imports only

from .catalog import CatalogStore, LifecycleRegistry, catalog_lifecycle
from .catalog_sync import CatalogSyncService, catalog_sync_service
from .cart import CartValidationService
from .checkout import CheckoutService, CheckoutSessionBuilder
from .email import EmailService
from .shipping import ShippingService
from .webhooks import WebhookService

__all__ = [
    "CatalogStore",
    "LifecycleRegistry",
    "catalog_lifecycle",
    "CatalogSyncService",
    "catalog_sync_service",
    "CartValidationService",
    "CheckoutService",
    "CheckoutSessionBuilder",
    "EmailService",
    "ShippingService",
    "WebhookService",
]
