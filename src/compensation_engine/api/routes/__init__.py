"""API routes."""

from compensation_engine.api.routes.assessments import router as assessments_router
from compensation_engine.api.routes.directory import router as directory_router
from compensation_engine.api.routes.health import router as health_router
from compensation_engine.api.routes.periods import router as periods_router
from compensation_engine.api.routes.statements import router as statements_router

__all__ = [
    "assessments_router",
    "directory_router",
    "health_router",
    "periods_router",
    "statements_router",
]
