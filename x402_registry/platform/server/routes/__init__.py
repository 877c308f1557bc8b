from fastapi import APIRouter

from x402_registry.platform.server.routes.base import base_router
from x402_registry.registry.routes import (
    agents_router,
    analytics_router,
    dev_router,
    overview_router,
    payments_router,
    registry_router,
)

root = APIRouter()
root.include_router(base_router)
root.include_router(overview_router)
root.include_router(agents_router)
root.include_router(registry_router)
root.include_router(payments_router)
root.include_router(analytics_router)
root.include_router(dev_router)
