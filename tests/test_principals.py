# tests/test_principals.py

"""
Tests for principal administration: role changes, overrides, typed writes.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from core.errors import ConcurrencyConflict, NotFound, PermissionDenied, ValidationError
from core.store import AUDIT_LOGS, PRINCIPALS
from models.enums import Collection, FullRole, SubRole, UserStatus
from models.permission import CollectionPermission
from models.principal import ProfileUpdate


def test_get_unknown_principal(principals):
    with pytest.raises(NotFound):
        principals.get("ghost")


def test_duplicate_email_is_rejected(make_principal):
    make_principal("one", FullRole.agent, email="same@example.com")
    with pytest.raises(ValidationError):
        make_principal("two", FullRole.agent, email="same@example.com")


def test_change_role_rebuilds_role_entries_and_keeps_overrides(principals, sales_user, admin, store):
    principals.grant_overrides(sales_user.id, [
        CollectionPermission(collection=Collection.blogs, sub_role=SubRole.moderator, granted_by=admin.id),
    ])
    before = principals.get(sales_user.id)

    changed = principals.change_role(sales_user.id, "hr", actor=admin, reason="transfer")

    assert changed.full_role == FullRole.hr
    assert {p.collection for p in changed.collection_permissions} == {
        Collection.careers, Collection.developers,
    }
    assert changed.permission_overrides == before.permission_overrides
    assert changed.version == before.version + 1
    assert changed.last_role_change.changed_by == admin.id

    actions = [row["action"] for row in store.find(AUDIT_LOGS)]
    assert "user_role_changed" in actions


def test_change_role_is_single_guarded_write(principals, sales_user, admin, store):
    with patch.object(store, "update_where", wraps=store.update_where) as spy:
        principals.change_role(sales_user.id, FullRole.agent, actor=admin)

    spy.assert_called_once()
    table, record_id, expected, changes = spy.call_args.args
    assert table == PRINCIPALS
    assert expected == {"version": sales_user.version}
    assert {"full_role", "collection_permissions"} <= set(changes)
    assert "permission_overrides" not in changes


def test_change_role_conflict(principals, sales_user, admin, store):
    original = store.update_where

    def racing_update(table, record_id, expected, changes):
        original(table, record_id, {}, {"version": 99})
        return original(table, record_id, expected, changes)

    with patch.object(store, "update_where", side_effect=racing_update):
        with pytest.raises(ConcurrencyConflict):
            principals.change_role(sales_user.id, FullRole.agent, actor=admin)


def test_same_role_is_noop(principals, sales_user, admin):
    unchanged = principals.change_role(sales_user.id, FullRole.sales, actor=admin)
    assert unchanged.version == sales_user.version


def test_unknown_role_is_rejected(principals, sales_user, admin):
    with pytest.raises(ValidationError):
        principals.change_role(sales_user.id, "janitor", actor=admin)


@pytest.mark.parametrize("actor_role, target_role, new_role", [
    (FullRole.admin, FullRole.sales, FullRole.admin),            # only super admin assigns admin
    (FullRole.admin, FullRole.sales, FullRole.super_admin),      # never assignable
    (FullRole.super_admin, FullRole.sales, FullRole.super_admin),
    (FullRole.hr, FullRole.user, FullRole.agent),                # new role not below actor
    (FullRole.hr, FullRole.sales, FullRole.user),                # target not below actor
    (FullRole.admin, FullRole.admin, FullRole.user),             # admin-level target
])
def test_role_hierarchy_rules(principals, make_principal, actor_role, target_role, new_role):
    actor = make_principal("actor", actor_role)
    target = make_principal("target", target_role)

    with pytest.raises(PermissionDenied):
        principals.change_role(target.id, new_role, actor=actor)


def test_cannot_change_own_role(principals, admin):
    with pytest.raises(PermissionDenied):
        principals.change_role(admin.id, FullRole.user, actor=admin)


def test_super_admin_can_demote_admin(principals, super_admin, admin):
    changed = principals.change_role(admin.id, FullRole.marketing, actor=super_admin)
    assert changed.full_role == FullRole.marketing


def test_grant_overrides_retries_after_concurrent_write(principals, sales_user, store):
    original = store.update_where
    calls = {"n": 0}

    def flaky_update(table, record_id, expected, changes):
        calls["n"] += 1
        if calls["n"] == 1:
            # Someone else bumps the version first
            original(table, record_id, {}, {"version": expected["version"] + 1})
        return original(table, record_id, expected, changes)

    with patch.object(store, "update_where", side_effect=flaky_update):
        saved = principals.grant_overrides(sales_user.id, [
            CollectionPermission(collection=Collection.news, sub_role=SubRole.observer),
        ])

    assert calls["n"] == 2
    assert [o.collection for o in saved.permission_overrides] == [Collection.news]


def test_revoke_override(principals, sales_user):
    principals.grant_overrides(sales_user.id, [
        CollectionPermission(collection=Collection.news, sub_role=SubRole.observer),
    ])
    revoked = principals.revoke_override(sales_user.id, Collection.news)
    assert revoked.permission_overrides == []


def test_prune_expired_overrides(principals, sales_user, clock, store):
    principals.grant_overrides(sales_user.id, [
        CollectionPermission(collection=Collection.news, sub_role=SubRole.observer, expires_at=clock() + timedelta(days=1)),
        CollectionPermission(collection=Collection.blogs, sub_role=SubRole.observer),
    ])
    clock.advance(days=2)

    assert principals.prune_expired_overrides() == 1
    assert [o.collection for o in principals.get(sales_user.id).permission_overrides] == [Collection.blogs]
    assert any(row["action"] == "override_expired" for row in store.find(AUDIT_LOGS))


def test_typed_writers_leave_permissions_alone(principals, sales_user, clock):
    before = principals.get(sales_user.id)

    principals.record_login(sales_user.id)
    principals.update_profile(sales_user.id, ProfileUpdate(bio="Closer"))
    after = principals.set_status(sales_user.id, UserStatus.suspended)

    assert after.bio == "Closer"
    assert after.last_login == clock()
    assert after.status == UserStatus.suspended
    assert after.collection_permissions == before.collection_permissions
    assert after.permission_overrides == before.permission_overrides
    assert after.version == before.version + 3
