# core/resolver.py

"""
Permission resolution.

resolve() decides (principal, collection, action) in a fixed order with no
fallback between steps:

    1. override for the collection   → decide from it alone (terminal)
    2. role-derived entry            → decide from it
    3. nothing                       → deny

An override that grants LESS than the role default still wins.

Nothing here raises or mutates. "Not allowed" is an ordinary return value,
so call sites must branch on decision.allowed.
"""

from datetime import datetime
from typing import FrozenSet, Optional
from pydantic import BaseModel, Field

from core.catalog import actions_for
from core.utils import utcnow
from models.enums import Action, Collection, FullRole, SubRole
from models.permission import CollectionPermission, Restrictions, find_entry
from models.principal import Principal


SOURCE_OVERRIDE = "override"
SOURCE_ROLE = "role"
SOURCE_NONE = "none"


class Decision(BaseModel):
    allowed: bool
    matched_source: str = SOURCE_NONE
    sub_role: Optional[SubRole] = None
    restrictions: Restrictions = Field(default_factory=Restrictions)

    model_config = {"frozen": True}

    def __bool__(self):
        return self.allowed


DENY = Decision(allowed=False)


def _live_override(principal: Principal, collection: Collection, now: datetime) -> Optional[CollectionPermission]:
    entry = find_entry(principal.permission_overrides, collection)
    # An expired time-bound override is treated as absent
    if entry is None or entry.is_expired(now):
        return None
    return entry


def _match(principal: Principal, collection: Collection, now: Optional[datetime]):
    now = now or utcnow()

    override = _live_override(principal, collection, now)
    if override is not None:
        return override, SOURCE_OVERRIDE

    role_entry = find_entry(principal.collection_permissions, collection)
    if role_entry is not None:
        return role_entry, SOURCE_ROLE

    return None, SOURCE_NONE


def resolve(
    principal: Principal,
    collection,
    action,
    now: Optional[datetime] = None,
) -> Decision:
    collection = Collection.parse(collection)
    action = Action.parse(action)
    if principal is None or collection is None or action is None:
        return DENY

    entry, source = _match(principal, collection, now)
    if entry is None:
        return DENY

    return Decision(
        allowed=action in actions_for(entry.sub_role),
        matched_source=source,
        sub_role=entry.sub_role,
        restrictions=entry.restrictions,
    )


def get_all_permissions(principal: Principal, collection, now: Optional[datetime] = None) -> FrozenSet[Action]:
    """Every action the principal may perform on `collection` (same precedence as resolve)."""
    collection = Collection.parse(collection)
    if principal is None or collection is None:
        return frozenset()

    entry, _ = _match(principal, collection, now)
    if entry is None:
        return frozenset()
    return actions_for(entry.sub_role)


def get_sub_role_for_collection(principal: Principal, collection, now: Optional[datetime] = None) -> Optional[SubRole]:
    collection = Collection.parse(collection)
    if principal is None or collection is None:
        return None

    entry, _ = _match(principal, collection, now)
    return entry.sub_role if entry is not None else None


def get_accessible_collections(principal: Principal, now: Optional[datetime] = None) -> FrozenSet[Collection]:
    """
    Union of collections from role-derived entries and live overrides.
    A collection is listed even if the matched sub-role grants only `view`.
    """
    if principal is None:
        return frozenset()
    now = now or utcnow()

    collections = {p.collection for p in principal.collection_permissions}
    collections.update(
        o.collection for o in principal.permission_overrides if not o.is_expired(now)
    )
    return frozenset(collections)


def is_admin(principal: Principal) -> bool:
    return principal is not None and principal.full_role in (FullRole.admin, FullRole.super_admin)


def is_super_admin(principal: Principal) -> bool:
    return principal is not None and principal.full_role == FullRole.super_admin
