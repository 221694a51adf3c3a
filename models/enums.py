from enum import Enum


class BaseStrEnum(str, Enum):
    """
    Base enum that serializes cleanly to a string
    and provides a .list() method for UI dropdowns.
    """

    def __str__(self):
        return str(self.value)

    @classmethod
    def list(cls):
        return [item.value for item in cls]

    @classmethod
    def parse(cls, value):
        """Return the member for `value`, or None when it is not recognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


# -----------------------------------------------------
# FULL ROLE (collection scope)
# -----------------------------------------------------
class FullRole(BaseStrEnum):
    """Coarse role; decides which collections a user gets by default."""

    super_admin = "super_admin"
    admin = "admin"
    agent = "agent"                          # Projects
    marketing = "marketing"                  # Blogs, News
    sales = "sales"                          # Plots, Malls, Buildings
    hr = "hr"                                # Careers, Developers
    community_manager = "community_manager"  # Communities
    user = "user"                            # Basic access


# -----------------------------------------------------
# COLLECTION
# -----------------------------------------------------
class Collection(BaseStrEnum):
    """Content collections managed by the CMS."""

    projects = "projects"
    blogs = "blogs"
    news = "news"
    careers = "careers"
    developers = "developers"
    plots = "plots"
    malls = "malls"
    buildings = "buildings"
    communities = "communities"
    users = "users"
    system = "system"


# -----------------------------------------------------
# ACTION
# -----------------------------------------------------
class Action(BaseStrEnum):
    """Actions that can be performed on a collection."""

    view = "view"
    add = "add"
    edit = "edit"
    delete = "delete"
    approve = "approve"
    reject = "reject"
    publish = "publish"
    unpublish = "unpublish"
    export = "export"
    import_ = "import"


# -----------------------------------------------------
# SUB ROLE (action scope)
# -----------------------------------------------------
class SubRole(BaseStrEnum):
    """Bundle of actions granted inside a single collection."""

    observer = "observer"                  # View only
    contributor = "contributor"            # View + Add + Edit
    moderator = "moderator"                # View + Add + Edit + Approve/Reject
    collection_admin = "collection_admin"  # All actions within the collection


# -----------------------------------------------------
# USER STATUS
# -----------------------------------------------------
class UserStatus(BaseStrEnum):
    invited = "invited"
    active = "active"
    suspended = "suspended"
    deleted = "deleted"


# -----------------------------------------------------
# PERMISSION REQUEST STATUS
# -----------------------------------------------------
class RequestStatus(BaseStrEnum):
    """Workflow state of a permission request."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    expired = "expired"


# -----------------------------------------------------
# PERMISSION REQUEST PRIORITY
# -----------------------------------------------------
class RequestPriority(BaseStrEnum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    RequestPriority.low: 0,
    RequestPriority.normal: 1,
    RequestPriority.high: 2,
    RequestPriority.urgent: 3,
}


# -----------------------------------------------------
# REVIEW DECISION
# -----------------------------------------------------
class ReviewDecision(BaseStrEnum):
    approve = "approve"
    reject = "reject"


# -----------------------------------------------------
# INVITATION STATUS
# -----------------------------------------------------
class InvitationStatus(BaseStrEnum):
    pending = "pending"
    accepted = "accepted"
    expired = "expired"
    cancelled = "cancelled"


# -----------------------------------------------------
# AUDIT
# -----------------------------------------------------
class AuditLevel(BaseStrEnum):
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"

    @property
    def rank(self) -> int:
        return list(AuditLevel).index(self)


class AuditAction(BaseStrEnum):
    access_denied = "access_denied"
    user_role_changed = "user_role_changed"
    permission_request_submitted = "permission_request_submitted"
    permission_request_approved = "permission_request_approved"
    permission_request_rejected = "permission_request_rejected"
    permission_request_expired = "permission_request_expired"
    invitation_sent = "invitation_sent"
    invitation_accepted = "invitation_accepted"
    invitation_cancelled = "invitation_cancelled"
    invitation_expired = "invitation_expired"
    override_expired = "override_expired"
