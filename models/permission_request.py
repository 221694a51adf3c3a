# models/permission_request.py

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from core.utils import ensure_aware, utcnow
from models.enums import RequestPriority, RequestStatus, ReviewDecision
from models.permission import PermissionGrant, RequestedPermission


class PermissionRequestCreate(BaseModel):
    """Submit payload."""
    requested_permissions: List[RequestedPermission] = Field(default_factory=list)
    message: str = ""
    business_justification: Optional[str] = None
    requested_expiry: Optional[datetime] = Field(None, description="null = permanent")
    priority: RequestPriority = RequestPriority.normal


class PermissionRequestReview(BaseModel):
    """Review payload (admin only)."""
    decision: ReviewDecision
    review_notes: Optional[str] = None
    granted_permissions: Optional[List[RequestedPermission]] = Field(
        None, description="Defaults to the requested permissions"
    )
    granted_expiry: Optional[datetime] = Field(
        None, description="Defaults to the requested expiry"
    )


class PermissionRequest(BaseModel):
    """Stored permission request."""
    id: str
    requested_by: str
    requested_by_email: Optional[str] = None
    requested_by_name: Optional[str] = None

    requested_permissions: List[PermissionGrant]
    message: str
    business_justification: Optional[str] = None

    requested_expiry: Optional[datetime] = None
    status: RequestStatus = RequestStatus.pending
    priority: RequestPriority = RequestPriority.normal

    reviewed_by: Optional[str] = None
    reviewed_by_email: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    granted_permissions: Optional[List[PermissionGrant]] = None
    granted_expiry: Optional[datetime] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator(
        "requested_expiry", "reviewed_at", "granted_expiry", "created_at", "updated_at"
    )
    @classmethod
    def _aware(cls, value):
        return ensure_aware(value)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        # Permanent requests don't expire
        if self.requested_expiry is None:
            return False
        return (ensure_aware(now) or utcnow()) > self.requested_expiry


class PermissionRequestStats(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    expired: int = 0
    total: int = 0
