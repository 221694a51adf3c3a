# routers/__init__.py

from fastapi import APIRouter

from .health import router as health_router
from .permission_requests import router as permission_requests_router
from .invitations import router as invitations_router
from .users import router as users_router


api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(permission_requests_router)
api_router.include_router(invitations_router)
api_router.include_router(users_router)
