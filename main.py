import os
import sys
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Ensure local imports resolve
sys.path.append(os.path.dirname(__file__))

# Core
from core.config import settings
from core.config_validator import validate_config_on_startup
from core.errors import AccessControlError
from core.logging_config import logger
from core.registry import init_registry
from core.scheduler import start_scheduler
from core.store import DocumentStore

# -------------------------------------------------
# Routers
# -------------------------------------------------
from routers.health import router as health_router
from routers.permission_requests import router as permission_requests_router
from routers.invitations import router as invitations_router
from routers.users import router as users_router


# -------------------------------------------------
# Create the Application
# -------------------------------------------------
def create_app(store: Optional[DocumentStore] = None) -> FastAPI:
    """
    Build the API. `store` replaces the configured backend (tests pass a
    MemoryStore); otherwise configuration is validated and the backend is
    chosen from STORE_BACKEND.
    """
    if store is None:
        validate_config_on_startup()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="Collection-scoped access control for the estate CMS",
    )

    # -------------------------------------------------
    # CORS
    # -------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -------------------------------------------------
    # Services (one registry per app)
    # -------------------------------------------------
    registry = init_registry(app, store)

    # -------------------------------------------------
    # Startup / shutdown
    # -------------------------------------------------
    @app.on_event("startup")
    async def on_startup():
        logger.info(f"🚀 Starting {settings.PROJECT_NAME} ({settings.ENV})")
        if settings.ENABLE_SCHEDULER:
            app.state.scheduler = start_scheduler(registry)
        if registry.audit.webhook_url:
            registry.audit.start_dispatcher()

    @app.on_event("shutdown")
    async def on_shutdown():
        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        registry.audit.stop_dispatcher()

    # -------------------------------------------------
    # Error handling
    # -------------------------------------------------
    @app.exception_handler(AccessControlError)
    async def handle_access_control(request: Request, exc: AccessControlError):
        if exc.status_code in (403, 409):
            logger.warning(f"{exc.code} at {request.url}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (401, 403, 500):
            logger.warning(
                f"HTTP {exc.status_code} at {request.url}: {exc.detail}"
            )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.error("Unhandled error at %s", request.url, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # -------------------------------------------------
    # Register Routers
    # -------------------------------------------------
    app.include_router(health_router)
    app.include_router(permission_requests_router)
    app.include_router(invitations_router)
    app.include_router(users_router)

    return app


# Create the global FastAPI instance
app = create_app()
