"""Models package: import all models so metadata.create_all can discover them."""

from workdesk.models.role import Role, Permission, RolePermission
from workdesk.models.user import User
from workdesk.models.workspace import (
    Workspace, WorkspaceMember, PlanType, WorkspaceStatus, MembershipStatus,
)
from workdesk.models.refresh_token import RefreshToken
from workdesk.models.audit_log import AuditLog

__all__ = [
    "Role", "Permission", "RolePermission", "User",
    "Workspace", "WorkspaceMember", "PlanType", "WorkspaceStatus", "MembershipStatus",
    "RefreshToken", "AuditLog",
]
