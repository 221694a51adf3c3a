# models/invitation.py

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator

from core.utils import ensure_aware, utcnow
from models.enums import FullRole, InvitationStatus


class InvitationCreate(BaseModel):
    email: EmailStr
    role: str
    department: Optional[str] = None
    personal_message: Optional[str] = None
    expires_at: Optional[datetime] = Field(None, description="Defaults to now + INVITATION_TTL_DAYS")


class InvitationAccept(BaseModel):
    """Details the invitee supplies when redeeming a token."""
    display_name: str


class Invitation(BaseModel):
    id: str
    email: str
    role: FullRole
    department: Optional[str] = None
    invited_by: str
    invited_at: datetime
    token: str
    status: InvitationStatus = InvitationStatus.pending
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    personal_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("invited_at", "expires_at", "accepted_at", "cancelled_at", "created_at", "updated_at")
    @classmethod
    def _aware(cls, value):
        return ensure_aware(value)

    @field_validator("email")
    @classmethod
    def _lowercase(cls, value: str) -> str:
        return value.strip().lower()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (ensure_aware(now) or utcnow()) > self.expires_at

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.status == InvitationStatus.pending and not self.is_expired(now)


class InvitationPublic(BaseModel):
    """What an invitee sees when opening an invitation link."""
    email: str
    role: FullRole
    department: Optional[str] = None
    status: InvitationStatus
    expires_at: datetime
    personal_message: Optional[str] = None
    is_valid: bool


class InvitationAcceptance(BaseModel):
    """Returned by a successful redemption; seeds the new principal."""
    invitation_id: str
    email: str
    role: FullRole
    department: Optional[str] = None
    invited_by: Optional[str] = None
    accepted_at: Optional[datetime] = None
