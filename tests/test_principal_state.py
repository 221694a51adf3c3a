# tests/test_principal_state.py

"""
Tests for role-change reconciliation and the typed field writers.
"""

from datetime import datetime, timedelta, timezone

from core.principal_state import (
    apply_role_change,
    build_role_permissions,
    new_principal,
    prune_expired_overrides,
    record_login,
    set_status,
    update_profile,
    upsert_override,
)
from models.enums import Collection, FullRole, SubRole, UserStatus
from models.permission import CollectionPermission
from models.principal import Principal, ProfileUpdate


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _sales():
    return new_principal("p1", "Sam@Example.com", FullRole.sales, now=NOW)


def test_new_principal_is_seeded_from_catalog():
    principal = _sales()

    assert principal.email == "sam@example.com"
    assert principal.full_role == FullRole.sales
    assert [(p.collection, p.sub_role) for p in principal.collection_permissions] == [
        (Collection.buildings, SubRole.contributor),
        (Collection.malls, SubRole.contributor),
        (Collection.plots, SubRole.contributor),
    ]
    assert principal.permission_overrides == []
    # Creation is not recorded as a role change
    assert principal.last_role_change is None


def test_build_role_permissions_for_user_carries_restriction():
    entries = build_role_permissions(FullRole.user)
    assert len(entries) == 1
    assert entries[0].restrictions.approved_content_only is True


def test_role_change_replaces_role_entries_and_keeps_overrides():
    override = CollectionPermission(
        collection=Collection.blogs,
        sub_role=SubRole.moderator,
        granted_by="admin",
        granted_at=NOW,
        expires_at=NOW + timedelta(days=30),
    )
    principal = _sales().model_copy(update={"permission_overrides": [override]})
    before = principal.model_dump_json(include={"permission_overrides"})

    changed = apply_role_change(principal, FullRole.hr, changed_by="admin", reason="moved team", now=NOW)

    assert {p.collection for p in changed.collection_permissions} == {
        Collection.careers, Collection.developers,
    }
    assert all(p.sub_role == SubRole.moderator for p in changed.collection_permissions)
    assert changed.model_dump_json(include={"permission_overrides"}) == before
    assert changed.last_role_change.previous_role == FullRole.sales
    assert changed.last_role_change.new_role == FullRole.hr
    assert changed.last_role_change.reason == "moved team"


def test_role_change_does_not_mutate_input():
    principal = _sales()
    apply_role_change(principal, FullRole.agent, now=NOW)
    assert principal.full_role == FullRole.sales
    assert len(principal.collection_permissions) == 3


def test_unknown_stored_role_loads_as_no_role():
    principal = Principal.model_validate({
        "id": "x",
        "email": "x@example.com",
        "full_role": "janitor",
    })
    assert principal.full_role is None


def test_typed_writers_never_touch_permission_lists():
    principal = _sales()
    later = NOW + timedelta(hours=1)

    logged_in = record_login(principal, later)
    profiled = update_profile(principal, ProfileUpdate(display_name="Sammy", phone="555"), later)
    suspended = set_status(principal, UserStatus.suspended, later)

    for updated in (logged_in, profiled, suspended):
        assert updated.collection_permissions == principal.collection_permissions
        assert updated.permission_overrides == principal.permission_overrides

    assert logged_in.last_login == later
    assert profiled.display_name == "Sammy"
    assert profiled.phone == "555"
    assert suspended.status == UserStatus.suspended


def test_upsert_override_replaces_by_collection():
    first = CollectionPermission(collection=Collection.blogs, sub_role=SubRole.observer)
    second = CollectionPermission(collection=Collection.news, sub_role=SubRole.observer)
    replacement = CollectionPermission(collection=Collection.blogs, sub_role=SubRole.moderator)

    result = upsert_override([first, second], replacement)

    assert [(o.collection, o.sub_role) for o in result] == [
        (Collection.blogs, SubRole.moderator),
        (Collection.news, SubRole.observer),
    ]


def test_prune_expired_overrides():
    live = CollectionPermission(collection=Collection.blogs, sub_role=SubRole.observer)
    stale = CollectionPermission(
        collection=Collection.news,
        sub_role=SubRole.observer,
        expires_at=NOW - timedelta(seconds=1),
    )
    principal = _sales().model_copy(update={"permission_overrides": [live, stale]})

    pruned, removed = prune_expired_overrides(principal, NOW)

    assert [o.collection for o in pruned.permission_overrides] == [Collection.blogs]
    assert [o.collection for o in removed] == [Collection.news]
