"""Request authentication and authorization dependencies.

Every protected request walks the same chain, stopping at the first
failure:

    bearer token -> live user -> live workspace -> entitlement -> permission

Only the user id is taken from the token. The workspace, role, permission
set and entitlement are re-read from the database on each request, so role
edits, membership changes and suspensions apply to the next request.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from workdesk.core import permissions as perms
from workdesk.core.exceptions import AuthenticationError, AuthorizationError, EntitlementError
from workdesk.core.security import INVALID_TOKEN_MESSAGE, decode_token
from workdesk.db.session import get_db
from workdesk.models.user import User
from workdesk.services.entitlement import TRIAL_EXPIRED, EntitlementDecision, is_allowed
from workdesk.services.role_service import role_service
from workdesk.services.workspace_service import (
    EffectiveRole, WorkspaceContext, effective_role, workspace_service,
)

logger = logging.getLogger("workdesk.auth")

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)

TRIAL_EXPIRED_MESSAGE = "Your free trial has ended. Please upgrade or contact sales to continue."
NO_WORKSPACE_MESSAGE = "No workspace assigned. Please contact your administrator."


@dataclass(frozen=True)
class AuthContext:
    """What downstream handlers know about the caller."""

    user: User
    workspace: Optional[WorkspaceContext]
    role: EffectiveRole
    permissions: FrozenSet[perms.Permission]
    entitlement: EntitlementDecision

    @property
    def is_super_admin(self) -> bool:
        return bool(self.user.is_super_admin)

    @property
    def workspace_id(self) -> Optional[int]:
        return self.workspace.workspace_id if self.workspace else None

    def can(self, module: str, action: str) -> bool:
        return perms.has_permission(self.permissions, module, action, self.is_super_admin)

    def permissions_payload(self) -> Dict[str, Any]:
        """Advisory copy of the permission state for client-side UI gating."""
        return {
            "role": self.role.name,
            "role_source": self.role.source,
            "is_super_admin": self.is_super_admin,
            "permissions": [
                {"module": p.module, "action": p.action} for p in sorted(self.permissions)
            ],
            "modules": perms.group_by_module(self.permissions),
            "navigation": perms.navigation_visibility(self.permissions, self.is_super_admin),
        }


def load_active_user(db: Session, user_id: int) -> User:
    """Fetch the token's user; a missing or deactivated account is unauthenticated."""
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        logger.info("Rejected token for unknown or inactive user %s", user_id)
        raise AuthenticationError(INVALID_TOKEN_MESSAGE)
    return user


def build_context(db: Session, user: User) -> AuthContext:
    """Resolve workspace, role, permissions and entitlement from the store."""
    workspace = workspace_service.resolve(db, user.id)
    role = effective_role(user, workspace)
    if user.is_super_admin:
        granted = role_service.all_permissions(db)
    else:
        granted = role_service.permissions_for_role(db, role.name)
    return AuthContext(
        user=user,
        workspace=workspace,
        role=role,
        permissions=granted,
        entitlement=is_allowed(workspace),
    )


def get_current_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Authenticate the caller without gating on the workspace.

    Used by routes a user with an expired trial must still reach (profile,
    permissions, logout).
    """
    if credentials is None:
        raise AuthenticationError("Access token required")

    claims = decode_token(credentials.credentials)
    user = load_active_user(db, claims.user_id)
    context = build_context(db, user)

    if claims.workspace_id != context.workspace_id:
        logger.debug(
            "Token workspace %s differs from live workspace %s for user %s",
            claims.workspace_id, context.workspace_id, user.id,
        )

    request.state.auth = context
    return context


def require_workspace(context: AuthContext = Depends(get_current_context)) -> AuthContext:
    """Authenticated caller whose workspace is currently entitled.

    Super admins operate across tenants and are not gated.
    """
    if context.is_super_admin:
        return context

    decision = context.entitlement
    if decision.allowed:
        return context

    logger.info(
        "Entitlement denied user=%s workspace=%s reason=%s",
        context.user.id, context.workspace_id, decision.reason,
    )
    if decision.reason == TRIAL_EXPIRED:
        raise EntitlementError(TRIAL_EXPIRED_MESSAGE, decision.reason, decision.trial_ends_at)
    raise EntitlementError(NO_WORKSPACE_MESSAGE, decision.reason)


class RequirePermission:
    """Dependency that checks the caller holds ``module.action``."""

    def __init__(self, module: str, action: str):
        self.module = module
        self.action = action

    def __call__(self, context: AuthContext = Depends(require_workspace)) -> AuthContext:
        if not context.can(self.module, self.action):
            logger.info(
                "Permission denied user=%s workspace=%s needs=%s.%s",
                context.user.id, context.workspace_id, self.module, self.action,
            )
            raise AuthorizationError()
        return context


def require_super_admin(context: AuthContext = Depends(get_current_context)) -> AuthContext:
    if not context.is_super_admin:
        raise AuthorizationError()
    return context
