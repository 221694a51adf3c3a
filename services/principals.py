# services/principals.py

"""
Principal administration: the only place principals are written.

Every write sends exactly the fields the operation owns, guarded on the
principal's version, so a role change always lands together with its
rebuilt collection_permissions and never races a concurrent grant.
"""

from datetime import datetime
from typing import Callable, Iterable, List, Optional

from core.audit import AuditEmitter
from core.catalog import role_level
from core.errors import ConcurrencyConflict, NotFound, PermissionDenied, ValidationError
from core.logging_config import logger
from core.principal_state import (
    apply_role_change,
    new_principal,
    prune_expired_overrides,
    record_login,
    remove_override,
    set_status,
    update_profile,
    upsert_override,
)
from core.resolver import is_super_admin
from core.store import PRINCIPALS, DocumentStore, UniqueViolation
from core.utils import utcnow
from models.audit import AuditEvent
from models.enums import AuditAction, AuditLevel, Collection, FullRole, UserStatus
from models.invitation import InvitationAcceptance
from models.permission import CollectionPermission
from models.principal import Principal, ProfileUpdate


ROLE_FIELDS = ("full_role", "collection_permissions", "last_role_change", "updated_at")
OVERRIDE_FIELDS = ("permission_overrides", "updated_at")
LOGIN_FIELDS = ("last_login", "updated_at")
PROFILE_FIELDS = ("display_name", "department", "phone", "bio", "profile_image", "updated_at")
STATUS_FIELDS = ("status", "updated_at")

ADMIN_LEVEL = role_level(FullRole.admin)


class PrincipalService:
    def __init__(
        self,
        store: DocumentStore,
        audit: AuditEmitter,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.audit = audit
        self.clock = clock

    # ---------------------------------------------------------
    # Reads
    # ---------------------------------------------------------
    def get(self, principal_id: str) -> Principal:
        row = self.store.get(PRINCIPALS, principal_id)
        if not row:
            raise NotFound("User not found")
        return Principal.model_validate(row)

    def find_by_email(self, email: str) -> Optional[Principal]:
        row = self.store.find_one(PRINCIPALS, {"email": email.strip().lower()})
        return Principal.model_validate(row) if row else None

    # ---------------------------------------------------------
    # Creation
    # ---------------------------------------------------------
    def create(self, principal: Principal) -> Principal:
        try:
            row = self.store.insert(PRINCIPALS, principal.model_dump(mode="json"))
        except UniqueViolation as e:
            if e.field == "id":
                raise ValidationError(f"A user with id {principal.id} already exists")
            raise ValidationError("A user with this email already exists")
        logger.info(f"Created principal {principal.id} ({principal.full_role})")
        return Principal.model_validate(row)

    def create_from_invitation(
        self,
        acceptance: InvitationAcceptance,
        principal_id: str,
        display_name: str,
    ) -> Principal:
        """Materialize the principal an accepted invitation describes."""
        principal = new_principal(
            principal_id=principal_id,
            email=acceptance.email,
            role=acceptance.role,
            display_name=display_name,
            department=acceptance.department,
            created_by=acceptance.invited_by,
            status=UserStatus.active,
            now=self.clock(),
        )
        return self.create(principal)

    # ---------------------------------------------------------
    # Role changes
    # ---------------------------------------------------------
    def assert_can_change_role(self, actor: Principal, target: Principal, new_role: FullRole):
        if actor.id == target.id:
            raise PermissionDenied("Cannot change your own role")

        actor_level = role_level(actor.full_role)
        if role_level(target.full_role) >= actor_level:
            raise PermissionDenied("Cannot edit user with equal or higher role than your own")

        if new_role == FullRole.super_admin:
            raise PermissionDenied("Super admin roles cannot be assigned via API")

        if new_role == FullRole.admin and not is_super_admin(actor):
            raise PermissionDenied("Only super admins can assign admin roles")

        if role_level(new_role) >= actor_level:
            raise PermissionDenied("Cannot assign role equal or higher than your own")

        if not is_super_admin(actor) and role_level(target.full_role) >= ADMIN_LEVEL:
            raise PermissionDenied("Only super admins can modify admin-level users")

    def change_role(
        self,
        target_id: str,
        new_role,
        actor: Principal,
        reason: Optional[str] = None,
    ) -> Principal:
        role = FullRole.parse(new_role)
        if role is None:
            raise ValidationError(f"Unknown role '{new_role}'")

        target = self.get(target_id)
        self.assert_can_change_role(actor, target, role)

        if target.full_role == role:
            return target

        changed = apply_role_change(target, role, changed_by=actor.id, reason=reason, now=self.clock())

        # Single guarded write: role + rebuilt role-derived permissions
        saved = self._write(target, changed, ROLE_FIELDS)
        if saved is None:
            logger.warning(f"Role change for {target_id} lost a race (version {target.version})")
            raise ConcurrencyConflict("User was modified concurrently; reload and retry")

        logger.info(f"{actor.id} changed role of {target_id}: {target.full_role} → {role}")
        self.audit.emit(AuditEvent(
            action=AuditAction.user_role_changed,
            level=AuditLevel.info,
            actor_id=actor.id,
            target_id=target_id,
            resource="users",
            resource_id=target_id,
            details={
                "previous_role": str(target.full_role) if target.full_role else None,
                "new_role": str(role),
                "reason": reason,
            },
        ))
        return saved

    # ---------------------------------------------------------
    # Overrides
    # ---------------------------------------------------------
    def grant_overrides(
        self,
        principal_id: str,
        entries: Iterable[CollectionPermission],
    ) -> Principal:
        """Upsert each entry into permission_overrides (replace by collection)."""
        entries = list(entries)

        def mutate(principal: Principal) -> Principal:
            overrides = principal.permission_overrides
            for entry in entries:
                overrides = upsert_override(overrides, entry)
            return principal.model_copy(
                update={"permission_overrides": overrides, "updated_at": self.clock()},
                deep=True,
            )

        return self._update(principal_id, mutate, OVERRIDE_FIELDS)

    def revoke_override(self, principal_id: str, collection: Collection) -> Principal:
        def mutate(principal: Principal) -> Principal:
            return principal.model_copy(
                update={
                    "permission_overrides": remove_override(principal.permission_overrides, collection),
                    "updated_at": self.clock(),
                },
                deep=True,
            )

        return self._update(principal_id, mutate, OVERRIDE_FIELDS)

    def prune_expired_overrides(self, now: Optional[datetime] = None) -> int:
        """Sweep: drop expired overrides from every principal. Returns entries removed."""
        now = now or self.clock()
        removed_total = 0

        for row in self.store.find(PRINCIPALS):
            principal = Principal.model_validate(row)
            pruned, removed = prune_expired_overrides(principal, now)
            if not removed:
                continue

            if self._write(principal, pruned, OVERRIDE_FIELDS) is None:
                # Modified meanwhile; the next sweep picks it up
                logger.warning(f"Skipped override pruning for {principal.id}: concurrent update")
                continue

            removed_total += len(removed)
            for entry in removed:
                self.audit.emit(AuditEvent(
                    action=AuditAction.override_expired,
                    target_id=principal.id,
                    resource=str(entry.collection),
                    details={"sub_role": str(entry.sub_role), "expires_at": entry.expires_at.isoformat()},
                ))

        if removed_total:
            logger.info(f"Pruned {removed_total} expired permission override(s)")
        return removed_total

    # ---------------------------------------------------------
    # Typed field writers
    # ---------------------------------------------------------
    def record_login(self, principal_id: str) -> Principal:
        return self._update(principal_id, lambda p: record_login(p, self.clock()), LOGIN_FIELDS)

    def update_profile(self, principal_id: str, changes: ProfileUpdate) -> Principal:
        return self._update(principal_id, lambda p: update_profile(p, changes, self.clock()), PROFILE_FIELDS)

    def set_status(self, principal_id: str, status: UserStatus) -> Principal:
        return self._update(principal_id, lambda p: set_status(p, status, self.clock()), STATUS_FIELDS)

    # ---------------------------------------------------------
    # Guarded writes
    # ---------------------------------------------------------
    def _write(self, current: Principal, updated: Principal, fields) -> Optional[Principal]:
        data = updated.model_dump(mode="json", include=set(fields))
        data["version"] = current.version + 1

        row = self.store.update_where(
            PRINCIPALS,
            current.id,
            {"version": current.version},
            data,
        )
        return Principal.model_validate(row) if row else None

    def _update(
        self,
        principal_id: str,
        mutate: Callable[[Principal], Principal],
        fields,
        attempts: int = 3,
    ) -> Principal:
        """Read-modify-write, retried when another writer bumps the version first."""
        for _ in range(attempts):
            current = self.get(principal_id)
            saved = self._write(current, mutate(current), fields)
            if saved is not None:
                return saved
        raise ConcurrencyConflict("User was modified concurrently; reload and retry")

    def list_principals(self, role: Optional[FullRole] = None, limit: int = 100) -> List[Principal]:
        filters = {"full_role": str(role)} if role else None
        rows = self.store.find(PRINCIPALS, filters, order_by=[("created_at", True)], limit=limit)
        return [Principal.model_validate(r) for r in rows]
