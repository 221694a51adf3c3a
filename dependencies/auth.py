from datetime import timedelta
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from supabase import Client

from core.config import settings
from core.errors import ConcurrencyConflict, NotFound
from core.logging_config import logger
from core.registry import ServiceRegistry, get_registry
from core.resolver import is_admin
from core.supabase_client import get_supabase_client
from core.utils import utcnow
from models.enums import UserStatus
from models.principal import Principal


bearer_scheme = HTTPBearer()


# ============================================================
# Authenticated identity (who the token says you are)
# ============================================================
class AuthIdentity(BaseModel):
    id: str                 # Supabase Auth UID == principal id
    email: str
    display_name: Optional[str] = None


# ============================================================
# AUTH DECODING (Supabase: validates JWT)
# ============================================================
def get_identity(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> AuthIdentity:

    token = credentials.credentials

    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired authentication token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    client: Client = get_supabase_client()
    if not client:
        raise HTTPException(500, "Supabase client not configured")

    # ---------------------------------------------------------
    # Validate JWT via Supabase GoTrue
    # ---------------------------------------------------------
    try:
        auth_resp = client.auth.get_user(token)
        if not auth_resp or not auth_resp.user:
            raise unauthorized
        auth_user = auth_resp.user
    except Exception:
        raise unauthorized

    if not auth_user.email:
        raise unauthorized

    metadata = auth_user.user_metadata or {}
    return AuthIdentity(
        id=auth_user.id,
        email=auth_user.email.lower(),
        display_name=metadata.get("display_name") or metadata.get("full_name"),
    )


# ============================================================
# CURRENT PRINCIPAL (identity + stored permission state)
# ============================================================
def get_current_principal(
    identity: AuthIdentity = Depends(get_identity),
    registry: ServiceRegistry = Depends(get_registry),
) -> Principal:
    """
    The stored principal for the token. Authorization decisions are made
    from this snapshot, never from token metadata.
    """
    try:
        principal = registry.principals.get(identity.id)
    except NotFound:
        raise HTTPException(status_code=404, detail="User profile not found")

    if principal.status != UserStatus.active:
        logger.warning(f"Rejected request from {principal.status} user {principal.id}")
        raise HTTPException(status_code=403, detail=f"User account is {principal.status}")

    return _record_login(registry, principal)


def _record_login(registry: ServiceRegistry, principal: Principal) -> Principal:
    """Stamp last_login at most once per LOGIN_RECORD_INTERVAL_MINUTES."""
    now = utcnow()
    interval = timedelta(minutes=settings.LOGIN_RECORD_INTERVAL_MINUTES)
    if principal.last_login is not None and now - principal.last_login < interval:
        return principal

    try:
        return registry.principals.record_login(principal.id)
    except ConcurrencyConflict:
        # Another writer got there first; a later request stamps it
        logger.info(f"Skipped login stamp for {principal.id} (concurrent update)")
        return principal


# ============================================================
# ADMIN CHECK
# ============================================================
def requires_admin(current: Principal = Depends(get_current_principal)) -> Principal:
    if not is_admin(current):
        raise HTTPException(
            status_code=403,
            detail="Insufficient permissions - admin access required",
        )
    return current
