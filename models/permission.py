# models/permission.py

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from core.utils import ensure_aware, utcnow
from models.enums import Collection, SubRole


class Restrictions(BaseModel):
    """
    Scoping flags that narrow an allowed action to a subset of records.
    Interpreted by the caller against a concrete resource, never by the resolver.
    """
    own_content_only: bool = False
    approved_content_only: bool = False
    department_content_only: bool = False

    def is_empty(self) -> bool:
        return not (
            self.own_content_only
            or self.approved_content_only
            or self.department_content_only
        )


class PermissionGrant(BaseModel):
    """A bare (collection, sub_role) pair, as requested or granted."""
    collection: Collection
    sub_role: SubRole

    def key(self):
        return (self.collection, self.sub_role)


class CollectionPermission(BaseModel):
    """
    One entry of a principal's collection_permissions or permission_overrides.
    Unique per collection within its owning list.
    """
    collection: Collection
    sub_role: SubRole

    # Reserved. Stored and returned, never consulted when resolving.
    custom_actions: List[str] = Field(default_factory=list)
    restrictions: Restrictions = Field(default_factory=Restrictions)

    # Override metadata (set when an approval grants the entry)
    granted_by: Optional[str] = None
    granted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator("granted_at", "expires_at")
    @classmethod
    def _aware(cls, value):
        return ensure_aware(value)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Entries without expires_at are permanent."""
        if self.expires_at is None:
            return False
        return (ensure_aware(now) or utcnow()) > self.expires_at

    def as_grant(self) -> PermissionGrant:
        return PermissionGrant(collection=self.collection, sub_role=self.sub_role)


class RequestedPermission(BaseModel):
    """
    Raw (collection, sub_role) pair as it arrives over HTTP.
    Kept as plain strings so the workflow can report unknown values itself.
    """
    collection: str
    sub_role: str


def find_entry(entries: List[CollectionPermission], collection: Collection) -> Optional[CollectionPermission]:
    for entry in entries:
        if entry.collection == collection:
            return entry
    return None


def assert_unique_collections(entries: List[CollectionPermission], list_name: str):
    seen = set()
    for entry in entries:
        if entry.collection in seen:
            raise ValueError(f"{list_name} has more than one entry for '{entry.collection}'")
        seen.add(entry.collection)
