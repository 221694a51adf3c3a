# services/permission_requests.py

"""
Permission-request workflow.

    PENDING ──review(approve)──► APPROVED   (terminal)
    PENDING ──review(reject)───► REJECTED   (terminal)
    PENDING ──expiry passes────► EXPIRED    (terminal)

Every transition is one conditional write guarded on status == pending.
Two reviewers racing on the same request: one wins, the other gets
ConcurrencyConflict. Approval writes the granted entries into the
requester's permission_overrides (replace by collection).

Expiry is enforced two ways: review() re-checks it before deciding, and
sweep_expired() moves stale pending requests to EXPIRED. The sweep runs
from core.scheduler or jobs/expiry_sweep_job.py.
"""

from datetime import datetime
from typing import Callable, Iterable, List, Optional

from core.audit import AuditEmitter
from core.config import settings
from core.errors import ConcurrencyConflict, InvalidState, NotFound, PermissionDenied, ValidationError
from core.logging_config import logger
from core.resolver import is_admin, is_super_admin
from core.store import PERMISSION_REQUESTS, DocumentStore
from core.utils import clean_text, ensure_aware, new_id, utcnow
from models.audit import AuditEvent
from models.enums import (
    AuditAction,
    AuditLevel,
    Collection,
    RequestPriority,
    RequestStatus,
    ReviewDecision,
    SubRole,
)
from models.permission import CollectionPermission, PermissionGrant
from models.permission_request import PermissionRequest, PermissionRequestStats
from models.principal import Principal
from services.principals import PrincipalService


# ============================================================
# Input parsing
# ============================================================
def _pair(raw):
    if isinstance(raw, (PermissionGrant, CollectionPermission)):
        return raw.collection, raw.sub_role
    if isinstance(raw, dict):
        return raw.get("collection"), raw.get("sub_role", raw.get("subRole"))
    if isinstance(raw, (tuple, list)) and len(raw) == 2:
        return raw[0], raw[1]
    # RequestedPermission or any object with the two attributes
    return getattr(raw, "collection", None), getattr(raw, "sub_role", None)


def parse_grants(raw_permissions: Optional[Iterable], what: str = "requested") -> List[PermissionGrant]:
    """
    Validate a list of (collection, sub_role) pairs.
    Raises ValidationError on empty input, unknown values or repeated pairs.
    """
    raw_permissions = list(raw_permissions or [])
    if not raw_permissions:
        raise ValidationError(f"At least one permission must be {what}")

    grants, seen = [], set()
    for raw in raw_permissions:
        collection_value, sub_role_value = _pair(raw)
        collection = Collection.parse(collection_value)
        sub_role = SubRole.parse(sub_role_value)
        if collection is None or sub_role is None:
            raise ValidationError(
                f"Invalid permission format: collection='{collection_value}', sub_role='{sub_role_value}'"
            )

        grant = PermissionGrant(collection=collection, sub_role=sub_role)
        if grant.key() in seen:
            raise ValidationError("Duplicate permissions detected")
        seen.add(grant.key())
        grants.append(grant)

    return grants


def _held_pairs(principal: Principal, now: datetime) -> set:
    held = {(p.collection, p.sub_role) for p in principal.collection_permissions}
    held.update(
        (o.collection, o.sub_role)
        for o in principal.permission_overrides
        if not o.is_expired(now)
    )
    return held


# ============================================================
# Workflow
# ============================================================
class PermissionRequestWorkflow:
    def __init__(
        self,
        store: DocumentStore,
        principals: PrincipalService,
        audit: AuditEmitter,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.principals = principals
        self.audit = audit
        self.clock = clock

    # ---------------------------------------------------------
    # submit
    # ---------------------------------------------------------
    def submit(
        self,
        requester: Principal,
        requested_permissions,
        message: str,
        requested_expiry: Optional[datetime] = None,
        priority=RequestPriority.normal,
        business_justification: Optional[str] = None,
    ) -> PermissionRequest:
        now = self.clock()

        if is_super_admin(requester):
            raise ValidationError("Super administrators already have all permissions")

        grants = parse_grants(requested_permissions)

        message = clean_text(message)
        if not message:
            raise ValidationError("Message explaining the request is required")
        if len(message) > settings.PERMISSION_REQUEST_MESSAGE_MAX:
            raise ValidationError(
                f"Message must be at most {settings.PERMISSION_REQUEST_MESSAGE_MAX} characters"
            )

        business_justification = clean_text(business_justification)
        if business_justification and len(business_justification) > settings.BUSINESS_JUSTIFICATION_MAX:
            raise ValidationError(
                f"Business justification must be at most {settings.BUSINESS_JUSTIFICATION_MAX} characters"
            )

        parsed_priority = RequestPriority.parse(priority)
        if parsed_priority is None:
            raise ValidationError(f"Invalid priority '{priority}'")

        requested_expiry = ensure_aware(requested_expiry)
        if requested_expiry is not None and requested_expiry <= now:
            raise ValidationError("Invalid expiry date - must be in the future")

        # Drop what the requester already holds
        held = _held_pairs(requester, now)
        grants = [g for g in grants if g.key() not in held]
        if not grants:
            raise ValidationError("You already have all the requested permissions")

        # One pending request per (collection, sub_role) per requester
        pending_keys = set()
        for row in self.store.find(PERMISSION_REQUESTS, {"requested_by": requester.id, "status": RequestStatus.pending.value}):
            pending_keys.update(g.key() for g in PermissionRequest.model_validate(row).requested_permissions)
        if any(g.key() in pending_keys for g in grants):
            raise ValidationError("You already have a pending request for some of these permissions")

        request = PermissionRequest(
            id=new_id(),
            requested_by=requester.id,
            requested_by_email=requester.email,
            requested_by_name=requester.display_name,
            requested_permissions=grants,
            message=message,
            business_justification=business_justification,
            requested_expiry=requested_expiry,
            status=RequestStatus.pending,
            priority=parsed_priority,
            created_at=now,
            updated_at=now,
        )

        row = request.model_dump(mode="json")
        # Stored so the pending queue can be ordered by the backend
        row["priority_rank"] = parsed_priority.rank
        self.store.insert(PERMISSION_REQUESTS, row)

        logger.info(
            f"User {requester.id} submitted permission request {request.id} "
            f"for {[f'{g.collection}:{g.sub_role}' for g in grants]}"
        )
        self.audit.emit(AuditEvent(
            action=AuditAction.permission_request_submitted,
            actor_id=requester.id,
            resource="permission_request",
            resource_id=request.id,
            details={
                "requested_permissions": [g.model_dump(mode="json") for g in grants],
                "message": message[:100] + ("..." if len(message) > 100 else ""),
                "expiry": requested_expiry.isoformat() if requested_expiry else "permanent",
                "priority": str(parsed_priority),
            },
        ))
        return request

    # ---------------------------------------------------------
    # review
    # ---------------------------------------------------------
    def review(
        self,
        request_id: str,
        reviewer: Principal,
        decision,
        review_notes: Optional[str] = None,
        granted_permissions=None,
        granted_expiry: Optional[datetime] = None,
    ) -> PermissionRequest:
        now = self.clock()

        if not is_admin(reviewer):
            raise PermissionDenied("Insufficient permissions - admin access required")

        request = self.get(request_id)

        # A late review must not succeed on an expired request
        if request.status == RequestStatus.pending and request.is_expired(now):
            self._expire(request, now)
            raise InvalidState("Request has already expired")

        if request.status != RequestStatus.pending:
            raise InvalidState(f"Request has already been {request.status}")

        parsed_decision = ReviewDecision.parse(decision)
        if parsed_decision is None:
            raise ValidationError("Decision must be 'approve' or 'reject'")

        review_notes = clean_text(review_notes)
        if review_notes and len(review_notes) > settings.REVIEW_NOTES_MAX:
            raise ValidationError(f"Review notes must be at most {settings.REVIEW_NOTES_MAX} characters")

        changes = {
            "reviewed_by": reviewer.id,
            "reviewed_by_email": reviewer.email,
            "reviewed_at": now.isoformat(),
            "review_notes": review_notes,
            "updated_at": now.isoformat(),
        }

        grants: List[PermissionGrant] = []
        expiry = None
        if parsed_decision == ReviewDecision.approve:
            if granted_permissions is None:
                grants = list(request.requested_permissions)
            else:
                grants = parse_grants(granted_permissions, what="granted")

            expiry = ensure_aware(granted_expiry) or request.requested_expiry
            if expiry is not None and expiry <= now:
                raise ValidationError("Granted expiry must be in the future")

            changes.update({
                "status": RequestStatus.approved.value,
                "granted_permissions": [g.model_dump(mode="json") for g in grants],
                "granted_expiry": expiry.isoformat() if expiry else None,
            })
        else:
            changes["status"] = RequestStatus.rejected.value

        row = self.store.update_where(
            PERMISSION_REQUESTS,
            request_id,
            {"status": RequestStatus.pending.value},
            changes,
        )
        if row is None:
            logger.warning(f"Review of permission request {request_id} lost a race")
            raise ConcurrencyConflict("Request was reviewed concurrently; reload it")

        if parsed_decision == ReviewDecision.approve:
            self._grant(request, grants, expiry, reviewer, now)

        reviewed = PermissionRequest.model_validate(row)
        logger.info(f"Admin {reviewer.id} {reviewed.status} permission request {request_id}")
        self.audit.emit(AuditEvent(
            action=(
                AuditAction.permission_request_approved
                if parsed_decision == ReviewDecision.approve
                else AuditAction.permission_request_rejected
            ),
            actor_id=reviewer.id,
            target_id=request.requested_by,
            resource="permission_request",
            resource_id=request_id,
            details={
                "permissions": [
                    g.model_dump(mode="json")
                    for g in (grants if parsed_decision == ReviewDecision.approve else request.requested_permissions)
                ],
                "granted_expiry": expiry.isoformat() if expiry else None,
                "review_notes": review_notes or "No notes provided",
            },
        ))
        return reviewed

    def _grant(self, request: PermissionRequest, grants, expiry, reviewer: Principal, now: datetime):
        entries = [
            CollectionPermission(
                collection=g.collection,
                sub_role=g.sub_role,
                granted_by=reviewer.id,
                granted_at=now,
                expires_at=expiry,
            )
            for g in grants
        ]
        try:
            self.principals.grant_overrides(request.requested_by, entries)
        except Exception:
            # Put the request back so it can be reviewed again
            logger.error(f"Failed to grant permissions for request {request.id}; reverting to pending")
            self.store.update_where(
                PERMISSION_REQUESTS,
                request.id,
                {"status": RequestStatus.approved.value, "reviewed_by": reviewer.id},
                {
                    "status": RequestStatus.pending.value,
                    "reviewed_by": None,
                    "reviewed_by_email": None,
                    "reviewed_at": None,
                    "review_notes": None,
                    "granted_permissions": None,
                    "granted_expiry": None,
                    "updated_at": self.clock().isoformat(),
                },
            )
            raise

    # ---------------------------------------------------------
    # expiry
    # ---------------------------------------------------------
    def _expire(self, request: PermissionRequest, now: datetime) -> bool:
        row = self.store.update_where(
            PERMISSION_REQUESTS,
            request.id,
            {"status": RequestStatus.pending.value},
            {"status": RequestStatus.expired.value, "updated_at": now.isoformat()},
        )
        if row is None:
            return False

        logger.info(f"Permission request {request.id} expired")
        self.audit.emit(AuditEvent(
            action=AuditAction.permission_request_expired,
            level=AuditLevel.info,
            target_id=request.requested_by,
            resource="permission_request",
            resource_id=request.id,
            details={"requested_expiry": request.requested_expiry.isoformat()},
        ))
        return True

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Move every pending request whose requested_expiry has passed to EXPIRED."""
        now = ensure_aware(now) or self.clock()
        expired = 0
        for row in self.store.find(PERMISSION_REQUESTS, {"status": RequestStatus.pending.value}):
            request = PermissionRequest.model_validate(row)
            if request.is_expired(now) and self._expire(request, now):
                expired += 1
        return expired

    # ---------------------------------------------------------
    # reads
    # ---------------------------------------------------------
    def get(self, request_id: str) -> PermissionRequest:
        row = self.store.get(PERMISSION_REQUESTS, request_id)
        if not row:
            raise NotFound("Permission request not found")
        return PermissionRequest.model_validate(row)

    def list_pending(self, limit: Optional[int] = None) -> List[PermissionRequest]:
        """Highest priority first; oldest first within the same priority."""
        rows = self.store.find(
            PERMISSION_REQUESTS,
            {"status": RequestStatus.pending.value},
            order_by=[("priority_rank", True), ("created_at", False)],
            limit=limit or settings.PENDING_LIST_LIMIT,
        )
        return [PermissionRequest.model_validate(r) for r in rows]

    def list_for_user(self, user_id: str, limit: int = 20) -> List[PermissionRequest]:
        return self.list_requests(requested_by=user_id, limit=limit)

    def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        requested_by: Optional[str] = None,
        limit: int = 20,
    ) -> List[PermissionRequest]:
        filters = {}
        if status:
            filters["status"] = str(status)
        if requested_by:
            filters["requested_by"] = requested_by
        rows = self.store.find(
            PERMISSION_REQUESTS,
            filters or None,
            order_by=[("created_at", True)],
            limit=limit,
        )
        return [PermissionRequest.model_validate(r) for r in rows]

    def stats(self) -> PermissionRequestStats:
        counts = {
            status.value: self.store.count(PERMISSION_REQUESTS, {"status": status.value})
            for status in RequestStatus
        }
        return PermissionRequestStats(total=sum(counts.values()), **counts)
