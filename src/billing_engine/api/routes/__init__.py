"""API routes."""

from billing_engine.api.routes.analytics import router as analytics_router
from billing_engine.api.routes.billing_periods import router as billing_periods_router
from billing_engine.api.routes.charges import router as charges_router
from billing_engine.api.routes.exports import router as exports_router
from billing_engine.api.routes.health import router as health_router

__all__ = [
    "analytics_router",
    "billing_periods_router",
    "charges_router",
    "exports_router",
    "health_router",
]
