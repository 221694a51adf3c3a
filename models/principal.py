# models/principal.py

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from core.logging_config import logger
from core.utils import ensure_aware
from models.enums import Collection, FullRole, SubRole, UserStatus
from models.permission import (
    CollectionPermission,
    Restrictions,
    assert_unique_collections,
)


class RoleChange(BaseModel):
    previous_role: Optional[FullRole] = None
    new_role: FullRole
    changed_by: Optional[str] = None
    changed_at: datetime
    reason: Optional[str] = None


# ===============================================================
# PRINCIPAL
# ===============================================================
class Principal(BaseModel):
    """
    A resolved, authenticated user together with both permission lists.

    collection_permissions -> role-derived, rebuilt on every role change
    permission_overrides   -> explicit grants, survive role changes
    """
    id: str
    email: str
    display_name: str = ""

    # None = no recognized role. Such a principal gets no role-derived access.
    full_role: Optional[FullRole] = None
    department: Optional[str] = None
    status: UserStatus = UserStatus.invited

    collection_permissions: List[CollectionPermission] = Field(default_factory=list)
    permission_overrides: List[CollectionPermission] = Field(default_factory=list)

    created_by: Optional[str] = None
    last_role_change: Optional[RoleChange] = None
    last_login: Optional[datetime] = None

    # Profile
    phone: Optional[str] = None
    bio: Optional[str] = None
    profile_image: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Bumped on every write; conditional updates are guarded on it
    version: int = 0

    model_config = {"from_attributes": True}

    @field_validator("full_role", mode="before")
    @classmethod
    def _unknown_role_denies(cls, value):
        if value is None:
            return None
        role = FullRole.parse(value)
        if role is None:
            logger.warning(f"Unrecognized role '{value}'; treating principal as having no role")
        return role

    @field_validator("last_login", "created_at", "updated_at")
    @classmethod
    def _aware(cls, value):
        return ensure_aware(value)

    @model_validator(mode="after")
    def _one_entry_per_collection(self):
        assert_unique_collections(self.collection_permissions, "collection_permissions")
        assert_unique_collections(self.permission_overrides, "permission_overrides")
        return self


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile. Never touches permissions."""
    display_name: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    profile_image: Optional[str] = None


class RoleChangeRequest(BaseModel):
    full_role: str
    reason: Optional[str] = None


class OverrideGrant(BaseModel):
    """Admin payload for granting an override directly."""
    collection: Collection
    sub_role: SubRole
    restrictions: Restrictions = Field(default_factory=Restrictions)
    expires_at: Optional[datetime] = None


class PrincipalCreate(BaseModel):
    id: str
    email: EmailStr
    display_name: str
    full_role: FullRole
    department: Optional[str] = None


class PermissionSummary(BaseModel):
    """Read model backing the admin surface and /users/me/permissions."""
    principal_id: str
    full_role: Optional[FullRole] = None
    accessible_collections: List[Collection]
    permissions: dict
