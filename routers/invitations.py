# routers/invitations.py

from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from core.permission_helpers import requires_collection_permission
from core.registry import ServiceRegistry, get_registry
from dependencies.auth import AuthIdentity, get_identity, requires_admin
from models.enums import Action, Collection, InvitationStatus
from models.invitation import Invitation, InvitationAccept, InvitationCreate, InvitationPublic
from models.principal import Principal

router = APIRouter(
    prefix="/invitations",
    tags=["Invitations"],
)


# -----------------------------------------------------
# POST /invitations
# -----------------------------------------------------
@router.post(
    "",
    response_model=Invitation,
    status_code=201,
    summary="Invite a new user",
)
def create_invitation(
    payload: InvitationCreate,
    current: Principal = Depends(requires_collection_permission(Collection.users, Action.add)),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.invitations.create(
        email=payload.email,
        role=payload.role,
        invited_by=current,
        department=payload.department,
        personal_message=payload.personal_message,
        expires_at=payload.expires_at,
    )


# -----------------------------------------------------
# GET /invitations (admin)
# -----------------------------------------------------
@router.get(
    "",
    response_model=List[Invitation],
    summary="List invitations (admin)",
)
def list_invitations(
    status: Optional[InvitationStatus] = None,
    email: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.invitations.list_invitations(status=status, email=email, limit=limit)


# -----------------------------------------------------
# GET /invitations/{token}
# Public: what the invitee sees before signing in
# -----------------------------------------------------
@router.get(
    "/{token}",
    response_model=InvitationPublic,
    summary="Look up an invitation by token",
)
def get_invitation(
    token: str,
    registry: ServiceRegistry = Depends(get_registry),
):
    invitation = registry.invitations.get_by_token(token)
    return InvitationPublic(
        email=invitation.email,
        role=invitation.role,
        department=invitation.department,
        status=invitation.status,
        expires_at=invitation.expires_at,
        personal_message=invitation.personal_message,
        is_valid=invitation.is_valid(),
    )


# -----------------------------------------------------
# POST /invitations/{token}/accept
# The signed-in invitee redeems the token; creates their principal
# -----------------------------------------------------
@router.post(
    "/{token}/accept",
    response_model=Principal,
    status_code=201,
    summary="Accept an invitation",
)
def accept_invitation(
    token: str,
    payload: InvitationAccept,
    identity: AuthIdentity = Depends(get_identity),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.invitations.redeem(
        token,
        principal_id=identity.id,
        email=identity.email,
        display_name=payload.display_name or identity.display_name or identity.email,
    )


# -----------------------------------------------------
# POST /invitations/{id}/cancel (admin)
# -----------------------------------------------------
@router.post(
    "/{invitation_id}/cancel",
    response_model=Invitation,
    summary="Cancel a pending invitation",
)
def cancel_invitation(
    invitation_id: str,
    admin: Principal = Depends(requires_admin),
    registry: ServiceRegistry = Depends(get_registry),
):
    return registry.invitations.cancel(invitation_id, cancelled_by=admin)
