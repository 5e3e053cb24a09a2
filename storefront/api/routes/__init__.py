from __future__ import annotations

from storefront.api.routes.health import router as health_router
from storefront.api.routes.orders import router as orders_router
from storefront.api.routes.payments import router as payments_router
from storefront.api.routes.webhooks import router as webhooks_router

__all__ = ["health_router", "orders_router", "payments_router", "webhooks_router"]
