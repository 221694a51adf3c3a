# ============================================
# CENTRALIZED ROLE → COLLECTION / SUBROLE → ACTION MAPS
# ============================================
#
# Pure lookups. Every function here is total: unknown input never raises,
# it resolves to "no access" instead.
#
# An unrecognized role maps to an EMPTY collection set. That is the
# fail-safe deny: a principal whose role we cannot read gets nothing by
# default, only what explicit overrides grant.

from typing import FrozenSet, Optional, Union

from models.enums import Action, Collection, FullRole, SubRole
from models.permission import Restrictions

RoleLike = Union[FullRole, str, None]


ROLE_COLLECTIONS = {

    # =====================================================
    # SUPER ADMIN - every collection
    # =====================================================
    FullRole.super_admin: frozenset(Collection),

    # =====================================================
    # ADMIN - everything except system settings
    # =====================================================
    FullRole.admin: frozenset({
        Collection.projects,
        Collection.blogs, Collection.news,
        Collection.careers, Collection.developers,
        Collection.plots, Collection.malls, Collection.buildings,
        Collection.communities,
        Collection.users,
    }),

    FullRole.agent: frozenset({Collection.projects}),

    FullRole.marketing: frozenset({Collection.blogs, Collection.news}),

    FullRole.sales: frozenset({
        Collection.plots, Collection.malls, Collection.buildings,
    }),

    FullRole.hr: frozenset({Collection.careers, Collection.developers}),

    FullRole.community_manager: frozenset({Collection.communities}),

    # =====================================================
    # USER - very limited default access
    # =====================================================
    FullRole.user: frozenset({Collection.projects}),
}


ROLE_DEFAULT_SUBROLES = {
    FullRole.super_admin: SubRole.collection_admin,
    FullRole.admin: SubRole.collection_admin,
    FullRole.agent: SubRole.contributor,
    FullRole.marketing: SubRole.contributor,
    FullRole.sales: SubRole.contributor,
    FullRole.hr: SubRole.moderator,
    FullRole.community_manager: SubRole.moderator,
    FullRole.user: SubRole.observer,
}


# Each bundle is a superset of the one before it.
SUBROLE_ACTIONS = {
    SubRole.observer: frozenset({Action.view}),
    SubRole.contributor: frozenset({Action.view, Action.add, Action.edit}),
    SubRole.moderator: frozenset({
        Action.view, Action.add, Action.edit,
        Action.approve, Action.reject,
    }),
    SubRole.collection_admin: frozenset(Action),
}


# Used by user management: an actor may only manage strictly lower levels.
ROLE_LEVELS = {
    FullRole.user: 1,
    FullRole.agent: 2,
    FullRole.marketing: 2,
    FullRole.sales: 2,
    FullRole.hr: 2,
    FullRole.community_manager: 2,
    FullRole.admin: 3,
    FullRole.super_admin: 4,
}


def _role(role: RoleLike) -> Optional[FullRole]:
    if role is None:
        return None
    return FullRole.parse(role)


def default_collections(role: RoleLike) -> FrozenSet[Collection]:
    """Collections a role gets by default. Unknown role -> empty set."""
    return ROLE_COLLECTIONS.get(_role(role), frozenset())


def default_sub_role(role: RoleLike) -> SubRole:
    """
    Default sub-role for a role. Unknown roles get observer, which grants
    nothing on its own because such a role has no default collections.
    """
    return ROLE_DEFAULT_SUBROLES.get(_role(role), SubRole.observer)


def actions_for(sub_role: Union[SubRole, str, None]) -> FrozenSet[Action]:
    parsed = SubRole.parse(sub_role) if sub_role is not None else None
    return SUBROLE_ACTIONS.get(parsed, frozenset())


def default_restrictions(role: RoleLike) -> Restrictions:
    """Plain users only see approved content by default."""
    if _role(role) == FullRole.user:
        return Restrictions(approved_content_only=True)
    return Restrictions()


def role_level(role: RoleLike) -> int:
    return ROLE_LEVELS.get(_role(role), 0)
