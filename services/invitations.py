# services/invitations.py

"""
Invitation lifecycle.

    PENDING ──accept──────────► ACCEPTED   (terminal)
    PENDING ──cancel──────────► CANCELLED  (terminal)
    PENDING ──expires_at past─► EXPIRED    (terminal)

EXPIRED is applied lazily: any read of a pending invitation whose
expires_at has passed is corrected (and the correction persisted) before it
is returned. The same correction runs before an invitation is first saved.
"""

import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from core.audit import AuditEmitter
from core.catalog import role_level
from core.config import settings
from core.errors import ConcurrencyConflict, InvalidState, NotFound, PermissionDenied, ValidationError
from core.logging_config import logger
from core.notifications import format_invitation_email, send_email
from core.resolver import is_admin, is_super_admin
from core.store import INVITATIONS, DocumentStore, UniqueViolation
from core.utils import clean_text, ensure_aware, new_id, utcnow
from models.audit import AuditEvent
from models.enums import AuditAction, AuditLevel, FullRole, InvitationStatus
from models.invitation import Invitation, InvitationAcceptance
from models.principal import Principal
from services.principals import PrincipalService


TOKEN_ATTEMPTS = 3


def generate_token() -> str:
    return secrets.token_urlsafe(settings.INVITATION_TOKEN_BYTES)


def accept_url(token: str) -> Optional[str]:
    if not settings.INVITATION_ACCEPT_URL:
        return None
    return settings.INVITATION_ACCEPT_URL.format(token=token)


class InvitationWorkflow:
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
    # create
    # ---------------------------------------------------------
    def assert_can_invite(self, inviter: Principal, role: FullRole):
        if not is_admin(inviter):
            raise PermissionDenied("Insufficient permissions - admin access required")

        if role == FullRole.super_admin:
            raise PermissionDenied("Super admin roles cannot be assigned via invitation")

        if role == FullRole.admin and not is_super_admin(inviter):
            raise PermissionDenied("Only super admins can invite admins")

        if not is_super_admin(inviter) and role_level(role) >= role_level(inviter.full_role):
            raise PermissionDenied("Cannot invite a role equal or higher than your own")

    def create(
        self,
        email: str,
        role,
        invited_by: Principal,
        department: Optional[str] = None,
        personal_message: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Invitation:
        now = self.clock()

        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise ValidationError("A valid email address is required")

        parsed_role = FullRole.parse(role)
        if parsed_role is None:
            raise ValidationError(f"Invalid role '{role}'")

        self.assert_can_invite(invited_by, parsed_role)

        if self.principals.find_by_email(email):
            raise ValidationError("A user with this email already exists")

        for existing in self.list_invitations(email=email, status=InvitationStatus.pending):
            if existing.is_valid(now):
                raise ValidationError("A pending invitation for this email already exists")

        expires_at = ensure_aware(expires_at) or now + timedelta(days=settings.INVITATION_TTL_DAYS)

        invitation = None
        for attempt in range(TOKEN_ATTEMPTS):
            invitation = Invitation(
                id=new_id(),
                email=email,
                role=parsed_role,
                department=clean_text(department),
                invited_by=invited_by.id,
                invited_at=now,
                token=generate_token(),
                status=InvitationStatus.pending,
                expires_at=expires_at,
                personal_message=clean_text(personal_message),
                created_at=now,
                updated_at=now,
            )
            # An already-expired invitation is saved as EXPIRED
            if invitation.is_expired(now):
                invitation = invitation.model_copy(update={"status": InvitationStatus.expired})

            try:
                self.store.insert(INVITATIONS, invitation.model_dump(mode="json"))
                break
            except UniqueViolation:
                logger.warning(f"Invitation token collision (attempt {attempt + 1}); regenerating")
        else:
            raise ConcurrencyConflict("Could not generate a unique invitation token")

        logger.info(f"{invited_by.id} invited {email} as {parsed_role}")

        if invitation.status == InvitationStatus.pending:
            self._send_email(invitation)

        self.audit.emit(AuditEvent(
            action=AuditAction.invitation_sent,
            level=AuditLevel.info,
            actor_id=invited_by.id,
            resource="invitation",
            resource_id=invitation.id,
            details={"email": email, "role": str(parsed_role), "department": invitation.department},
        ))
        return invitation

    def _send_email(self, invitation: Invitation):
        if not settings.SEND_INVITATION_EMAILS:
            return
        try:
            send_email(
                subject=f"You're invited to {settings.PROJECT_NAME}",
                body=format_invitation_email(invitation, accept_url(invitation.token)),
                to=invitation.email,
            )
        except Exception as e:
            # The invitation stands; the link can be re-sent by hand
            logger.error(f"Failed to send invitation email to {invitation.email}: {e}")

    # ---------------------------------------------------------
    # lazy expiry
    # ---------------------------------------------------------
    def _correct(self, invitation: Invitation, now: Optional[datetime] = None) -> Invitation:
        """Move a pending invitation past its expiry to EXPIRED, persisting the change."""
        now = now or self.clock()
        if invitation.status != InvitationStatus.pending or not invitation.is_expired(now):
            return invitation

        row = self.store.update_where(
            INVITATIONS,
            invitation.id,
            {"status": InvitationStatus.pending.value},
            {"status": InvitationStatus.expired.value, "updated_at": now.isoformat()},
        )
        if row is None:
            # Someone else changed it first; report what is stored now
            return self._load(invitation.id)

        logger.info(f"Invitation {invitation.id} for {invitation.email} expired")
        self.audit.emit(AuditEvent(
            action=AuditAction.invitation_expired,
            level=AuditLevel.info,
            resource="invitation",
            resource_id=invitation.id,
            details={"email": invitation.email, "expires_at": invitation.expires_at.isoformat()},
        ))
        return Invitation.model_validate(row)

    def _load(self, invitation_id: str) -> Invitation:
        row = self.store.get(INVITATIONS, invitation_id)
        if not row:
            raise NotFound("Invitation not found")
        return Invitation.model_validate(row)

    # ---------------------------------------------------------
    # reads
    # ---------------------------------------------------------
    def get(self, invitation_id: str) -> Invitation:
        return self._correct(self._load(invitation_id))

    def get_by_token(self, token: str) -> Invitation:
        row = self.store.find_one(INVITATIONS, {"token": token}) if token else None
        if not row:
            raise NotFound("Invitation not found")
        return self._correct(Invitation.model_validate(row))

    def list_invitations(
        self,
        status: Optional[InvitationStatus] = None,
        email: Optional[str] = None,
        invited_by: Optional[str] = None,
        limit: int = 100,
    ) -> List[Invitation]:
        filters = {}
        if email:
            filters["email"] = email.strip().lower()
        if invited_by:
            filters["invited_by"] = invited_by
        # Pending rows may turn out expired, so filter by status after correcting
        if status and status != InvitationStatus.pending and status != InvitationStatus.expired:
            filters["status"] = str(status)

        now = self.clock()
        rows = self.store.find(INVITATIONS, filters or None, order_by=[("created_at", True)])
        invitations = [self._correct(Invitation.model_validate(r), now) for r in rows]
        if status:
            invitations = [i for i in invitations if i.status == status]
        return invitations[:limit]

    # ---------------------------------------------------------
    # accept / cancel
    # ---------------------------------------------------------
    def accept(self, token: str) -> InvitationAcceptance:
        now = self.clock()
        invitation = self.get_by_token(token)

        if invitation.status != InvitationStatus.pending:
            raise InvalidState(f"Invitation is {invitation.status}")

        row = self.store.update_where(
            INVITATIONS,
            invitation.id,
            {"status": InvitationStatus.pending.value},
            {
                "status": InvitationStatus.accepted.value,
                "accepted_at": now.isoformat(),
                "updated_at": now.isoformat(),
            },
        )
        if row is None:
            raise ConcurrencyConflict("Invitation was redeemed or changed concurrently")

        logger.info(f"Invitation {invitation.id} accepted by {invitation.email}")
        self.audit.emit(AuditEvent(
            action=AuditAction.invitation_accepted,
            level=AuditLevel.info,
            target_id=invitation.invited_by,
            resource="invitation",
            resource_id=invitation.id,
            details={"email": invitation.email, "role": str(invitation.role)},
        ))

        return InvitationAcceptance(
            invitation_id=invitation.id,
            email=invitation.email,
            role=invitation.role,
            department=invitation.department,
            invited_by=invitation.invited_by,
            accepted_at=now,
        )

    def redeem(self, token: str, principal_id: str, email: str, display_name: str) -> Principal:
        """
        Accept on behalf of the signed-in invitee and create their principal.
        If the principal cannot be created the invitation goes back to PENDING
        so the token can be used again.
        """
        invitation = self.get_by_token(token)
        if invitation.email != email.strip().lower():
            logger.warning(f"{email} tried to redeem invitation addressed to {invitation.email}")
            raise PermissionDenied("This invitation was issued to a different email address")

        if self.principals.find_by_email(invitation.email):
            raise ValidationError("A user with this email already exists")

        acceptance = self.accept(token)
        try:
            return self.principals.create_from_invitation(
                acceptance,
                principal_id=principal_id,
                display_name=display_name,
            )
        except Exception:
            logger.error(f"Could not onboard {acceptance.email} from invitation {acceptance.invitation_id}; reopening it")
            self._reopen(acceptance)
            raise

    def _reopen(self, acceptance: InvitationAcceptance) -> None:
        self.store.update_where(
            INVITATIONS,
            acceptance.invitation_id,
            {
                "status": InvitationStatus.accepted.value,
                "accepted_at": acceptance.accepted_at.isoformat(),
            },
            {
                "status": InvitationStatus.pending.value,
                "accepted_at": None,
                "updated_at": self.clock().isoformat(),
            },
        )

    def cancel(self, invitation_id: str, cancelled_by: Principal) -> Invitation:
        if not is_admin(cancelled_by):
            raise PermissionDenied("Insufficient permissions - admin access required")

        now = self.clock()
        invitation = self.get(invitation_id)
        if invitation.status != InvitationStatus.pending:
            raise InvalidState(f"Invitation is {invitation.status}")

        row = self.store.update_where(
            INVITATIONS,
            invitation.id,
            {"status": InvitationStatus.pending.value},
            {
                "status": InvitationStatus.cancelled.value,
                "cancelled_at": now.isoformat(),
                "cancelled_by": cancelled_by.id,
                "updated_at": now.isoformat(),
            },
        )
        if row is None:
            raise ConcurrencyConflict("Invitation was redeemed or changed concurrently")

        logger.info(f"{cancelled_by.id} cancelled invitation {invitation.id}")
        self.audit.emit(AuditEvent(
            action=AuditAction.invitation_cancelled,
            level=AuditLevel.info,
            actor_id=cancelled_by.id,
            resource="invitation",
            resource_id=invitation.id,
            details={"email": invitation.email},
        ))
        return Invitation.model_validate(row)

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        now = ensure_aware(now) or self.clock()
        expired = 0
        for row in self.store.find(INVITATIONS, {"status": InvitationStatus.pending.value}):
            invitation = Invitation.model_validate(row)
            if invitation.is_expired(now):
                if self._correct(invitation, now).status == InvitationStatus.expired:
                    expired += 1
        return expired
