# -------------------------
# Enums
# -------------------------
from .enums import (
    FullRole,
    Collection,
    Action,
    SubRole,
    UserStatus,
    RequestStatus,
    RequestPriority,
    ReviewDecision,
    InvitationStatus,
    AuditLevel,
    AuditAction,
)

# -------------------------
# Permission entries
# -------------------------
from .permission import (
    Restrictions,
    PermissionGrant,
    CollectionPermission,
    RequestedPermission,
)

# -------------------------
# Principals
# -------------------------
from .principal import (
    Principal,
    RoleChange,
    ProfileUpdate,
    RoleChangeRequest,
    OverrideGrant,
    PermissionSummary,
)

# -------------------------
# Permission Requests
# -------------------------
from .permission_request import (
    PermissionRequest,
    PermissionRequestCreate,
    PermissionRequestReview,
    PermissionRequestStats,
)

# -------------------------
# Invitations
# -------------------------
from .invitation import (
    Invitation,
    InvitationCreate,
    InvitationAccept,
    InvitationPublic,
    InvitationAcceptance,
)

# -------------------------
# Audit
# -------------------------
from .audit import AuditEvent

__all__ = [
    # enums
    "FullRole",
    "Collection",
    "Action",
    "SubRole",
    "UserStatus",
    "RequestStatus",
    "RequestPriority",
    "ReviewDecision",
    "InvitationStatus",
    "AuditLevel",
    "AuditAction",

    # permission entries
    "Restrictions",
    "PermissionGrant",
    "CollectionPermission",
    "RequestedPermission",

    # principals
    "Principal",
    "RoleChange",
    "ProfileUpdate",
    "RoleChangeRequest",
    "OverrideGrant",
    "PermissionSummary",

    # permission requests
    "PermissionRequest",
    "PermissionRequestCreate",
    "PermissionRequestReview",
    "PermissionRequestStats",

    # invitations
    "Invitation",
    "InvitationCreate",
    "InvitationAccept",
    "InvitationPublic",
    "InvitationAcceptance",

    # audit
    "AuditEvent",
]
