# core/principal_state.py

"""
Mutations of a principal's permission state.

Every function here is pure: it returns a new Principal (or list) and
leaves its input untouched. Persisting the result is the service layer's job,
and it must write the role and the rebuilt collection_permissions together.

Rules:
  • A role change (including creation from "no role") discards every
    role-derived entry and rebuilds the list from the catalog.
  • Overrides are never touched by a role change.
  • Profile / login / status writes never touch either list.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from core.catalog import default_collections, default_restrictions, default_sub_role
from core.utils import utcnow
from models.enums import Collection, FullRole, UserStatus
from models.permission import CollectionPermission
from models.principal import Principal, ProfileUpdate, RoleChange


def build_role_permissions(role: Optional[FullRole]) -> List[CollectionPermission]:
    """Role-derived entries for `role`, one per default collection."""
    sub_role = default_sub_role(role)
    restrictions = default_restrictions(role)

    # Sorted so the stored list is stable across rebuilds
    return [
        CollectionPermission(
            collection=collection,
            sub_role=sub_role,
            restrictions=restrictions.model_copy(),
        )
        for collection in sorted(default_collections(role), key=lambda c: c.value)
    ]


def apply_role_change(
    principal: Principal,
    new_role: FullRole,
    changed_by: Optional[str] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Principal:
    now = now or utcnow()
    previous_role = principal.full_role

    update = {
        "full_role": new_role,
        "collection_permissions": build_role_permissions(new_role),
        "updated_at": now,
    }

    if previous_role is not None:
        update["last_role_change"] = RoleChange(
            previous_role=previous_role,
            new_role=new_role,
            changed_by=changed_by,
            changed_at=now,
            reason=reason,
        )

    return principal.model_copy(update=update, deep=True)


def new_principal(
    principal_id: str,
    email: str,
    role: FullRole,
    display_name: str = "",
    department: Optional[str] = None,
    created_by: Optional[str] = None,
    status: UserStatus = UserStatus.invited,
    now: Optional[datetime] = None,
) -> Principal:
    """Initial creation is a role change from "no role"."""
    now = now or utcnow()
    blank = Principal(
        id=principal_id,
        email=email.strip().lower(),
        display_name=display_name,
        full_role=None,
        department=department,
        status=status,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    return apply_role_change(blank, role, changed_by=created_by, now=now)


# ============================================================
# Typed field writers (no generic setter)
# ============================================================
def record_login(principal: Principal, now: Optional[datetime] = None) -> Principal:
    now = now or utcnow()
    return principal.model_copy(update={"last_login": now, "updated_at": now}, deep=True)


def update_profile(principal: Principal, changes: ProfileUpdate, now: Optional[datetime] = None) -> Principal:
    update = changes.model_dump(exclude_unset=True, exclude_none=True)
    update["updated_at"] = now or utcnow()
    return principal.model_copy(update=update, deep=True)


def set_status(principal: Principal, status: UserStatus, now: Optional[datetime] = None) -> Principal:
    return principal.model_copy(update={"status": status, "updated_at": now or utcnow()}, deep=True)


# ============================================================
# Overrides
# ============================================================
def upsert_override(
    overrides: List[CollectionPermission],
    entry: CollectionPermission,
) -> List[CollectionPermission]:
    """Replace the entry for entry.collection if present, else append."""
    result = []
    replaced = False
    for existing in overrides:
        if existing.collection == entry.collection:
            result.append(entry)
            replaced = True
        else:
            result.append(existing)
    if not replaced:
        result.append(entry)
    return result


def remove_override(
    overrides: List[CollectionPermission],
    collection: Collection,
) -> List[CollectionPermission]:
    return [o for o in overrides if o.collection != collection]


def prune_expired_overrides(
    principal: Principal,
    now: Optional[datetime] = None,
) -> Tuple[Principal, List[CollectionPermission]]:
    """Drop overrides whose expires_at has passed. Returns (principal, removed)."""
    now = now or utcnow()
    kept, removed = [], []
    for entry in principal.permission_overrides:
        (removed if entry.is_expired(now) else kept).append(entry)

    if not removed:
        return principal, []

    updated = principal.model_copy(
        update={"permission_overrides": kept, "updated_at": now}, deep=True
    )
    return updated, removed
