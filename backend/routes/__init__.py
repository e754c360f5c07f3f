# Consolidated route imports
from .checkout import router as checkout_router
from .health import router as health_router
from .shipping import router as shipping_router
from .webhooks import router as webhooks_router

# Export all routers for easy importing
__all__ = [
    "checkout_router",
    "health_router",
    "shipping_router",
    "webhooks_router",
]
