from fastapi import APIRouter

from app.features.audit.routes.audit import router as audit_router
from app.features.health.routes.health import router as health_router
from app.features.usage.routes.usage import router as usage_router

api_router = APIRouter()

# Register all feature routes
api_router.include_router(audit_router)
api_router.include_router(usage_router)
api_router.include_router(health_router)
