# routers/users.py

from typing import List
from fastapi import APIRouter, Depends

from core.registry import ServiceRegistry, get_registry
from core.resolver import get_accessible_collections, resolve
from core.utils import utcnow
from dependencies.auth import get_current_principal, requires_admin
from models.enums import Action, Collection
from models.permission import CollectionPermission
from models.principal import (
    OverrideGrant,
    PermissionSummary,
    Principal,
    ProfileUpdate,
    RoleChangeRequest,
)

router = APIRouter(
    prefix="/users",
    tags=["Users"],
)


def build_summary(principal: Principal) -> PermissionSummary:
    """Per-collection view of what the principal can do right now."""
    now = utcnow()
    collections = sorted(get_accessible_collections(principal, now), key=lambda c: c.value)

    permissions = {}
    for collection in collections:
        allowed = [a for a in Action if resolve(principal, collection, a, now).allowed]
        decision = resolve(principal, collection, Action.view, now)
        permissions[collection.value] = {
            "sub_role": str(decision.sub_role) if decision.sub_role else None,
            "source": decision.matched_source,
            "actions": [a.value for a in allowed],
            "restrictions": decision.restrictions.model_dump(),
        }

    return PermissionSummary(
        principal_id=principal.id,
        full_role=principal.full_role,
        accessible_collections=collections,
        permissions=permissions,
    )


# -----------------------------------------------------
# GET /users/me/permissions
# -----------------------------------------------------
@router.get(
    "/me/permissions",
    response_model=PermissionSummary,
    summary="My effective permissions",
)
def my_permissions(current: Principal = Depends(get_current_principal)):
    return build_summary(current)


# -----------------------------------------------------
# PATCH /users/me
# Profile fields only; permissions are never touched here
# -----------------------------------------------------
@router.patch(
    "/me",
    response_model=Principal,
    summary="Update my profile",
)
def update_my_profile(
    payload: ProfileUpdate,
    current: Principal = Depends(get_current_principal),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.principals.update_profile(current.id, payload)


# -----------------------------------------------------
# GET /users (admin)
# -----------------------------------------------------
@router.get(
    "",
    response_model=List[Principal],
    summary="List users (admin)",
)
def list_users(
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.principals.list_principals()


# -----------------------------------------------------
# GET /users/{id}/permissions (admin)
# -----------------------------------------------------
@router.get(
    "/{user_id}/permissions",
    response_model=PermissionSummary,
    summary="A user's effective permissions (admin)",
)
def user_permissions(
    user_id: str,
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    return build_summary(registry.principals.get(user_id))


# -----------------------------------------------------
# PATCH /users/{id}/role (admin)
# Rebuilds role-derived permissions; overrides survive
# -----------------------------------------------------
@router.patch(
    "/{user_id}/role",
    response_model=Principal,
    summary="Change a user's role (admin)",
)
def change_user_role(
    user_id: str,
    payload: RoleChangeRequest,
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.principals.change_role(
        target_id=user_id,
        new_role=payload.full_role,
        actor=admin,
        reason=payload.reason,
    )


# -----------------------------------------------------
# POST /users/{id}/overrides (admin)
# -----------------------------------------------------
@router.post(
    "/{user_id}/overrides",
    response_model=Principal,
    summary="Grant a permission override (admin)",
)
def grant_override(
    user_id: str,
    payload: OverrideGrant,
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    entry = CollectionPermission(
        collection=payload.collection,
        sub_role=payload.sub_role,
        restrictions=payload.restrictions,
        granted_by=admin.id,
        granted_at=utcnow(),
        expires_at=payload.expires_at,
    )
    return registry.principals.grant_overrides(user_id, [entry])


# -----------------------------------------------------
# DELETE /users/{id}/overrides/{collection} (admin)
# -----------------------------------------------------
@router.delete(
    "/{user_id}/overrides/{collection}",
    response_model=Principal,
    summary="Revoke a permission override (admin)",
)
def revoke_override(
    user_id: str,
    collection: Collection,
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.principals.revoke_override(user_id, collection)
