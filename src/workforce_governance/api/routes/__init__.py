"""API routes."""

from workforce_governance.api.routes.health import router as health_router
from workforce_governance.api.routes.work_items import router as work_items_router

__all__ = ["health_router", "work_items_router"]
