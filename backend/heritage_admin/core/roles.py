# heritage_admin/core/roles.py

import enum


class ProfileRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"    # platform operator, sees every tenant
    COUNTY_ADMIN = "county_admin"  # owns a tenant: billing, invites, content
    EDITOR = "editor"              # content only
    VIEWER = "viewer"              # read-only


class SubscriptionStatus(str, enum.Enum):
    INACTIVE = "inactive"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class TicketStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


ALL_ROLES = {r.value for r in ProfileRole}
CONTENT_WRITER_ROLES = {
    ProfileRole.SUPER_ADMIN.value,
    ProfileRole.COUNTY_ADMIN.value,
    ProfileRole.EDITOR.value,
}
INVITABLE_ROLES = {
    ProfileRole.COUNTY_ADMIN.value,
    ProfileRole.EDITOR.value,
    ProfileRole.VIEWER.value,
}
