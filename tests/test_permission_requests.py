# tests/test_permission_requests.py

"""
Tests for the permission-request workflow (submit / review / expiry).
"""

from datetime import timedelta
from unittest.mock import patch

import pytest

from core.errors import ConcurrencyConflict, InvalidState, NotFound, PermissionDenied, ValidationError
from core.resolver import resolve
from core.store import AUDIT_LOGS, PERMISSION_REQUESTS
from models.enums import Action, Collection, FullRole, RequestPriority, RequestStatus, SubRole
from models.permission import CollectionPermission


def _submit(workflow, requester, pairs=(("buildings", "moderator"),), **kwargs):
    kwargs.setdefault("message", "Need to approve listings while the lead is away")
    return workflow.submit(
        requester,
        [{"collection": c, "sub_role": s} for c, s in pairs],
        **kwargs,
    )


# ============================================================
# submit
# ============================================================
def test_submit_creates_pending_request(requests_workflow, sales_user, store):
    request = _submit(requests_workflow, sales_user, priority="high")

    assert request.status == RequestStatus.pending
    assert request.priority == RequestPriority.high
    assert request.requested_by == sales_user.id
    assert [(g.collection, g.sub_role) for g in request.requested_permissions] == [
        (Collection.buildings, SubRole.moderator),
    ]
    assert store.get(PERMISSION_REQUESTS, request.id)["priority_rank"] == 2


@pytest.mark.parametrize("pairs", [
    (),
    (("spaceships", "observer"),),
    (("buildings", "overlord"),),
    (("blogs", "observer"), ("blogs", "observer")),
])
def test_submit_rejects_malformed_permissions(requests_workflow, sales_user, store, pairs):
    with pytest.raises(ValidationError):
        _submit(requests_workflow, sales_user, pairs=pairs)
    assert store.count(PERMISSION_REQUESTS) == 0


@pytest.mark.parametrize("message", ["", "   ", "x" * 1001])
def test_submit_rejects_bad_message(requests_workflow, sales_user, message):
    with pytest.raises(ValidationError):
        _submit(requests_workflow, sales_user, message=message)


def test_submit_rejects_past_expiry(requests_workflow, sales_user, clock):
    with pytest.raises(ValidationError):
        _submit(requests_workflow, sales_user, requested_expiry=clock() - timedelta(minutes=1))


def test_submit_rejects_long_justification(requests_workflow, sales_user):
    with pytest.raises(ValidationError):
        _submit(requests_workflow, sales_user, business_justification="x" * 2001)


def test_super_admin_cannot_submit(requests_workflow, super_admin):
    with pytest.raises(ValidationError):
        _submit(requests_workflow, super_admin)


def test_submit_drops_already_held_pairs(requests_workflow, sales_user):
    request = _submit(
        requests_workflow,
        sales_user,
        pairs=(("buildings", "contributor"), ("blogs", "observer")),
    )
    assert [g.collection for g in request.requested_permissions] == [Collection.blogs]


def test_submit_rejects_when_everything_is_held(requests_workflow, sales_user):
    with pytest.raises(ValidationError):
        _submit(requests_workflow, sales_user, pairs=(("plots", "contributor"),))


def test_submit_rejects_overlapping_pending_request(requests_workflow, sales_user):
    _submit(requests_workflow, sales_user)
    with pytest.raises(ValidationError):
        _submit(requests_workflow, sales_user, pairs=(("buildings", "moderator"), ("news", "observer")))


def test_submit_emits_audit_event(requests_workflow, sales_user, store):
    _submit(requests_workflow, sales_user)
    actions = [row["action"] for row in store.find(AUDIT_LOGS)]
    assert "permission_request_submitted" in actions


# ============================================================
# review
# ============================================================
def test_sales_scenario_approval_grants_moderator(requests_workflow, principals, sales_user, admin):
    assert not resolve(sales_user, Collection.buildings, Action.approve)

    request = _submit(requests_workflow, sales_user)
    reviewed = requests_workflow.review(request.id, admin, "approve", review_notes="ok")

    assert reviewed.status == RequestStatus.approved
    assert reviewed.reviewed_by == admin.id
    assert reviewed.review_notes == "ok"

    refreshed = principals.get(sales_user.id)
    assert resolve(refreshed, Collection.buildings, Action.approve).allowed
    assert resolve(refreshed, Collection.buildings, Action.approve).matched_source == "override"


def test_approve_without_grants_materializes_requested(requests_workflow, principals, sales_user, admin):
    # Existing override for blogs must be replaced, news must be added
    principals.grant_overrides(sales_user.id, [
        CollectionPermission(collection=Collection.blogs, sub_role=SubRole.collection_admin),
    ])

    request = _submit(
        requests_workflow,
        principals.get(sales_user.id),
        pairs=(("blogs", "observer"), ("news", "contributor")),
    )
    requests_workflow.review(request.id, admin, "approve")

    overrides = principals.get(sales_user.id).permission_overrides
    assert sorted((o.collection.value, o.sub_role.value) for o in overrides) == [
        ("blogs", "observer"),
        ("news", "contributor"),
    ]
    assert all(o.granted_by == admin.id for o in overrides)


def test_approve_with_narrower_grant(requests_workflow, principals, sales_user, admin):
    request = _submit(requests_workflow, sales_user, pairs=(("blogs", "moderator"), ("news", "moderator")))
    reviewed = requests_workflow.review(
        request.id, admin, "approve",
        granted_permissions=[{"collection": "blogs", "sub_role": "observer"}],
    )

    assert [(g.collection, g.sub_role) for g in reviewed.granted_permissions] == [
        (Collection.blogs, SubRole.observer),
    ]
    overrides = principals.get(sales_user.id).permission_overrides
    assert [(o.collection, o.sub_role) for o in overrides] == [(Collection.blogs, SubRole.observer)]


def test_granted_expiry_defaults_to_requested_expiry(requests_workflow, principals, sales_user, admin, clock):
    expiry = clock() + timedelta(days=14)
    request = _submit(requests_workflow, sales_user, requested_expiry=expiry)
    reviewed = requests_workflow.review(request.id, admin, "approve")

    assert reviewed.granted_expiry == expiry
    override = principals.get(sales_user.id).permission_overrides[0]
    assert override.expires_at == expiry


def test_reject_leaves_principal_untouched(requests_workflow, principals, sales_user, admin):
    request = _submit(requests_workflow, sales_user)
    reviewed = requests_workflow.review(request.id, admin, "reject", review_notes="not now")

    assert reviewed.status == RequestStatus.rejected
    assert principals.get(sales_user.id).permission_overrides == []


@pytest.mark.parametrize("first, second", [
    ("approve", "approve"),
    ("approve", "reject"),
    ("reject", "approve"),
    ("reject", "reject"),
])
def test_second_review_fails_invalid_state(requests_workflow, sales_user, admin, first, second):
    request = _submit(requests_workflow, sales_user)
    requests_workflow.review(request.id, admin, first)

    with pytest.raises(InvalidState):
        requests_workflow.review(request.id, admin, second)


def test_review_unknown_request(requests_workflow, admin):
    with pytest.raises(NotFound):
        requests_workflow.review("missing", admin, "approve")


def test_review_requires_admin(requests_workflow, sales_user, make_principal):
    other = make_principal("hank", FullRole.hr)
    request = _submit(requests_workflow, sales_user)
    with pytest.raises(PermissionDenied):
        requests_workflow.review(request.id, other, "approve")


def test_late_review_of_expired_request_fails(requests_workflow, principals, sales_user, admin, clock):
    request = _submit(requests_workflow, sales_user, requested_expiry=clock() + timedelta(hours=1))
    clock.advance(hours=2)

    with pytest.raises(InvalidState):
        requests_workflow.review(request.id, admin, "approve")

    assert requests_workflow.get(request.id).status == RequestStatus.expired
    assert principals.get(sales_user.id).permission_overrides == []


def test_concurrent_review_loses_race(requests_workflow, store, sales_user, admin):
    request = _submit(requests_workflow, sales_user)

    # Another reviewer transitions the request between our read and our write
    original = store.update_where

    def racing_update(table, record_id, expected, changes):
        original(table, record_id, {}, {"status": "rejected"})
        return original(table, record_id, expected, changes)

    with patch.object(store, "update_where", side_effect=racing_update):
        with pytest.raises(ConcurrencyConflict):
            requests_workflow.review(request.id, admin, "approve")


def test_failed_grant_reverts_request_to_pending(requests_workflow, principals, sales_user, admin):
    request = _submit(requests_workflow, sales_user)

    with patch.object(principals, "grant_overrides", side_effect=ConcurrencyConflict("busy")):
        with pytest.raises(ConcurrencyConflict):
            requests_workflow.review(request.id, admin, "approve")

    restored = requests_workflow.get(request.id)
    assert restored.status == RequestStatus.pending
    assert restored.reviewed_by is None


def test_review_rejects_past_granted_expiry(requests_workflow, sales_user, admin, clock):
    request = _submit(requests_workflow, sales_user)
    with pytest.raises(ValidationError):
        requests_workflow.review(request.id, admin, "approve", granted_expiry=clock() - timedelta(days=1))
    assert requests_workflow.get(request.id).status == RequestStatus.pending


def test_review_rejects_unknown_decision(requests_workflow, sales_user, admin):
    request = _submit(requests_workflow, sales_user)
    with pytest.raises(ValidationError):
        requests_workflow.review(request.id, admin, "maybe")


# ============================================================
# listing / sweep
# ============================================================
def test_list_pending_orders_by_priority_then_age(requests_workflow, make_principal, clock):
    users = [make_principal(f"user{i}", FullRole.sales) for i in range(4)]

    low = _submit(requests_workflow, users[0], priority="low")
    clock.advance(minutes=1)
    urgent = _submit(requests_workflow, users[1], priority="urgent")
    clock.advance(minutes=1)
    normal_old = _submit(requests_workflow, users[2], priority="normal")
    clock.advance(minutes=1)
    normal_new = _submit(requests_workflow, users[3], priority="normal")

    ids = [r.id for r in requests_workflow.list_pending()]
    assert ids == [urgent.id, normal_old.id, normal_new.id, low.id]


def test_list_pending_breaks_ties_by_exact_age(requests_workflow, make_principal, clock):
    first_user = make_principal("early", FullRole.sales)
    second_user = make_principal("late", FullRole.sales)

    older = _submit(requests_workflow, first_user)
    clock.advance(milliseconds=500)
    newer = _submit(requests_workflow, second_user)

    assert [r.id for r in requests_workflow.list_pending()] == [older.id, newer.id]


def test_list_for_user_and_stats(requests_workflow, sales_user, admin, make_principal):
    other = make_principal("olga", FullRole.marketing)
    first = _submit(requests_workflow, sales_user)
    _submit(requests_workflow, other, pairs=(("projects", "observer"),))
    requests_workflow.review(first.id, admin, "reject")

    mine = requests_workflow.list_for_user(sales_user.id)
    assert [r.id for r in mine] == [first.id]

    stats = requests_workflow.stats()
    assert stats.total == 2
    assert stats.pending == 1
    assert stats.rejected == 1


def test_sweep_expires_only_overdue_requests(requests_workflow, sales_user, make_principal, clock):
    other = make_principal("olga", FullRole.marketing)
    overdue = _submit(requests_workflow, sales_user, requested_expiry=clock() + timedelta(hours=1))
    permanent = _submit(requests_workflow, other, pairs=(("projects", "observer"),))

    clock.advance(hours=2)
    assert requests_workflow.sweep_expired() == 1
    assert requests_workflow.get(overdue.id).status == RequestStatus.expired
    assert requests_workflow.get(permanent.id).status == RequestStatus.pending

    # Idempotent
    assert requests_workflow.sweep_expired() == 0
