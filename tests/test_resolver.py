# tests/test_resolver.py

"""
Tests for permission resolution.
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.principal_state import new_principal
from core.resolver import (
    get_accessible_collections,
    get_all_permissions,
    get_sub_role_for_collection,
    is_admin,
    resolve,
)
from models.enums import Action, Collection, FullRole, SubRole
from models.permission import CollectionPermission, Restrictions
from models.principal import Principal


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _with_overrides(role, *overrides):
    principal = new_principal("p1", "p1@example.com", role, now=NOW)
    return principal.model_copy(update={"permission_overrides": list(overrides)})


@pytest.mark.parametrize("action", list(Action))
def test_no_entry_in_either_list_denies(action):
    principal = new_principal("p1", "p1@example.com", FullRole.marketing, now=NOW)
    decision = resolve(principal, Collection.buildings, action, now=NOW)

    assert decision.allowed is False
    assert decision.matched_source == "none"


def test_sales_scenario_role_entries():
    principal = new_principal("p1", "p1@example.com", FullRole.sales, now=NOW)

    edit = resolve(principal, Collection.buildings, Action.edit, now=NOW)
    approve = resolve(principal, Collection.buildings, Action.approve, now=NOW)

    assert edit.allowed and edit.matched_source == "role"
    assert edit.sub_role == SubRole.contributor
    assert not approve.allowed


def test_override_wins_even_when_narrower():
    observer = CollectionPermission(collection=Collection.buildings, sub_role=SubRole.observer)
    principal = _with_overrides(FullRole.sales, observer)

    view = resolve(principal, Collection.buildings, Action.view, now=NOW)
    edit = resolve(principal, Collection.buildings, Action.edit, now=NOW)

    assert view.allowed and view.matched_source == "override"
    # The role entry would have allowed edit; the override is terminal
    assert not edit.allowed
    assert edit.matched_source == "override"


def test_override_grants_collection_outside_role():
    moderator = CollectionPermission(collection=Collection.blogs, sub_role=SubRole.moderator)
    principal = _with_overrides(FullRole.sales, moderator)

    assert resolve(principal, Collection.blogs, Action.approve, now=NOW).allowed
    assert Collection.blogs in get_accessible_collections(principal, NOW)


def test_expired_override_is_ignored():
    expired = CollectionPermission(
        collection=Collection.buildings,
        sub_role=SubRole.observer,
        expires_at=NOW - timedelta(minutes=1),
    )
    extra = CollectionPermission(
        collection=Collection.news,
        sub_role=SubRole.observer,
        expires_at=NOW - timedelta(minutes=1),
    )
    principal = _with_overrides(FullRole.sales, expired, extra)

    edit = resolve(principal, Collection.buildings, Action.edit, now=NOW)
    assert edit.allowed and edit.matched_source == "role"
    assert not resolve(principal, Collection.news, Action.view, now=NOW).allowed
    assert Collection.news not in get_accessible_collections(principal, NOW)


def test_restrictions_are_returned_uninterpreted():
    principal = new_principal("u1", "u1@example.com", FullRole.user, now=NOW)
    decision = resolve(principal, Collection.projects, Action.view, now=NOW)

    assert decision.allowed
    assert decision.restrictions == Restrictions(approved_content_only=True)


def test_invalid_input_denies_without_raising():
    principal = new_principal("p1", "p1@example.com", FullRole.admin, now=NOW)

    assert not resolve(principal, "spaceships", Action.view, now=NOW)
    assert not resolve(principal, Collection.projects, "teleport", now=NOW)
    assert not resolve(None, Collection.projects, Action.view, now=NOW)


def test_unknown_role_gets_only_overrides():
    principal = Principal(
        id="x",
        email="x@example.com",
        full_role=None,
        permission_overrides=[CollectionPermission(collection=Collection.news, sub_role=SubRole.observer)],
    )
    assert not resolve(principal, Collection.projects, Action.view, now=NOW)
    assert resolve(principal, Collection.news, Action.view, now=NOW)


def test_read_helpers_follow_resolution_order():
    override = CollectionPermission(collection=Collection.plots, sub_role=SubRole.collection_admin)
    principal = _with_overrides(FullRole.sales, override)

    assert get_sub_role_for_collection(principal, Collection.plots, NOW) == SubRole.collection_admin
    assert get_sub_role_for_collection(principal, Collection.malls, NOW) == SubRole.contributor
    assert get_sub_role_for_collection(principal, Collection.system, NOW) is None
    assert get_all_permissions(principal, Collection.plots, NOW) == frozenset(Action)
    assert get_all_permissions(principal, Collection.system, NOW) == frozenset()


def test_is_admin():
    assert is_admin(new_principal("a", "a@example.com", FullRole.admin, now=NOW))
    assert is_admin(new_principal("s", "s@example.com", FullRole.super_admin, now=NOW))
    assert not is_admin(new_principal("h", "h@example.com", FullRole.hr, now=NOW))
