# routers/health.py

from fastapi import APIRouter, Depends

from core.config import settings
from core.registry import ServiceRegistry, get_registry

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)


# -----------------------------------------------------
# GET /health/db
# Checks the configured store
# No auth required
# -----------------------------------------------------
@router.get("/db", summary="Store health check")
def health_db(registry: ServiceRegistry = Depends(get_registry)):
    """
    Verifies the persistence backend answers.
    Safe for external health monitors (no auth required).
    """
    try:
        status = registry.store.ping()
        return {
            "service": settings.STORE_BACKEND,
            "status": status.get("status", "unknown"),
            "details": status,
        }

    except Exception as e:
        return {
            "service": settings.STORE_BACKEND,
            "status": "error",
            "error": str(e),
        }


# -----------------------------------------------------
# GET /health/app
# Simple API health check
# -----------------------------------------------------
@router.get("/app", summary="App health check")
async def health_app():
    """
    Lightweight health check for uptime monitors.
    """
    return {
        "service": settings.PROJECT_NAME,
        "status": "ok",
    }
