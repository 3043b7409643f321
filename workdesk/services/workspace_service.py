"""Workspace service: current-workspace resolution, listing and memberships."""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from workdesk.core.exceptions import (
    RegistryInvariantError, ResourceNotFoundError, ValidationError,
)
from workdesk.models.role import Role
from workdesk.models.user import User
from workdesk.models.workspace import (
    MembershipStatus, Workspace, WorkspaceMember, WorkspaceStatus,
)

logger = logging.getLogger("workdesk.workspaces")


@dataclass(frozen=True)
class WorkspaceContext:
    """Snapshot of the user's current workspace and their membership in it."""

    workspace_id: int
    name: str
    slug: str
    owner_id: int
    plan_type: str
    status: str
    trial_ends_at: Optional[datetime]
    subscription_id: Optional[str]
    role: str
    membership_status: str
    joined_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.workspace_id,
            "name": self.name,
            "slug": self.slug,
            "role": self.role,
            "plan_type": self.plan_type,
            "trial_ends_at": self.trial_ends_at.isoformat() if self.trial_ends_at else None,
            "has_subscription": bool(self.subscription_id),
        }


@dataclass(frozen=True)
class WorkspaceRole:
    """Role taken from the membership in the resolved workspace."""

    name: str
    source = "workspace"


@dataclass(frozen=True)
class DefaultRole:
    """Account-level role label, used only when no workspace resolves."""

    name: str
    source = "default"


EffectiveRole = Union[WorkspaceRole, DefaultRole]


def effective_role(user: User, context: Optional[WorkspaceContext]) -> EffectiveRole:
    if context is not None:
        return WorkspaceRole(context.role)
    return DefaultRole(user.role)


def _enum_value(value: Any) -> str:
    return value.value if hasattr(value, "value") else str(value)


def generate_slug(text: str) -> str:
    """Turn a workspace name into a URL-friendly slug."""
    slug = str(text).lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^\w\-]+", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-") or "workspace"


class WorkspaceService:
    """Reads and administers workspaces and their memberships."""

    @staticmethod
    def resolve(db: Session, user_id: int) -> Optional[WorkspaceContext]:
        """Return the user's current workspace, or None.

        The current workspace is the most recently joined active membership
        in an active workspace. Always reads the store; results must not be
        cached across requests.
        """
        row = (
            db.query(WorkspaceMember, Workspace)
            .join(Workspace, Workspace.id == WorkspaceMember.workspace_id)
            .filter(
                WorkspaceMember.user_id == user_id,
                WorkspaceMember.status == MembershipStatus.active,
                Workspace.status == WorkspaceStatus.active,
            )
            .order_by(WorkspaceMember.joined_at.desc(), WorkspaceMember.id.desc())
            .first()
        )
        if row is None:
            return None

        member, workspace = row
        return WorkspaceContext(
            workspace_id=workspace.id,
            name=workspace.name,
            slug=workspace.slug,
            owner_id=workspace.owner_id,
            plan_type=_enum_value(workspace.plan_type),
            status=_enum_value(workspace.status),
            trial_ends_at=workspace.trial_ends_at,
            subscription_id=workspace.subscription_id,
            role=member.role,
            membership_status=_enum_value(member.status),
            joined_at=member.joined_at,
        )

    @staticmethod
    def generate_unique_slug(db: Session, name: str) -> str:
        """Slug for ``name`` suffixed with -1, -2, ... until unused."""
        base_slug = generate_slug(name)
        slug = base_slug
        counter = 1
        while db.query(Workspace.id).filter(Workspace.slug == slug).first() is not None:
            slug = f"{base_slug}-{counter}"
            counter += 1
        return slug

    @staticmethod
    def list_workspaces(db: Session, user: User) -> List[Dict[str, Any]]:
        """Workspaces visible to ``user``; super admins see every tenant."""
        if user.is_super_admin:
            workspaces = db.query(Workspace).order_by(Workspace.created_at.desc()).all()
            return [
                {
                    "id": w.id,
                    "name": w.name,
                    "slug": w.slug,
                    "owner_id": w.owner_id,
                    "plan_type": _enum_value(w.plan_type),
                    "status": _enum_value(w.status),
                }
                for w in workspaces
            ]

        rows = (
            db.query(WorkspaceMember, Workspace)
            .join(Workspace, Workspace.id == WorkspaceMember.workspace_id)
            .filter(
                WorkspaceMember.user_id == user.id,
                WorkspaceMember.status == MembershipStatus.active,
                Workspace.status == WorkspaceStatus.active,
            )
            .order_by(WorkspaceMember.joined_at.desc(), WorkspaceMember.id.desc())
            .all()
        )
        return [
            {
                "id": w.id,
                "name": w.name,
                "slug": w.slug,
                "owner_id": w.owner_id,
                "plan_type": _enum_value(w.plan_type),
                "status": _enum_value(w.status),
                "user_role": m.role,
                "membership_status": _enum_value(m.status),
            }
            for m, w in rows
        ]

    @staticmethod
    def list_members(db: Session, workspace_id: int) -> List[Dict[str, Any]]:
        rows = (
            db.query(WorkspaceMember, User)
            .join(User, User.id == WorkspaceMember.user_id)
            .filter(WorkspaceMember.workspace_id == workspace_id)
            .order_by(WorkspaceMember.joined_at.asc())
            .all()
        )
        return [
            {
                "user_id": u.id,
                "username": u.username,
                "email": u.email,
                "full_name": u.full_name,
                "role": m.role,
                "status": _enum_value(m.status),
                "joined_at": m.joined_at,
            }
            for m, u in rows
        ]

    @staticmethod
    def update_member(
        db: Session,
        workspace_id: int,
        user_id: int,
        role_name: Optional[str] = None,
        status: Optional[str] = None,
    ) -> WorkspaceMember:
        """Change a member's role and/or status within one workspace.

        Only memberships of ``workspace_id`` are reachable, so a caller can
        never touch another tenant's members.
        """
        if role_name is None and status is None:
            raise ValidationError("No fields to update")

        member = (
            db.query(WorkspaceMember)
            .filter(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == user_id,
            )
            .first()
        )
        if member is None:
            raise ResourceNotFoundError("Member not found")

        workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
        if workspace is not None and workspace.owner_id == user_id:
            raise RegistryInvariantError("The workspace owner's membership cannot be changed")

        if role_name is not None:
            if db.query(Role.id).filter(Role.name == role_name).first() is None:
                raise ResourceNotFoundError(f"Role '{role_name}' not found")
            member.role = role_name
        if status is not None:
            try:
                member.status = MembershipStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid membership status '{status}'")

        db.commit()
        db.refresh(member)
        logger.info(
            "Membership updated workspace=%s user=%s role=%s status=%s",
            workspace_id, user_id, member.role, _enum_value(member.status),
        )
        return member


workspace_service = WorkspaceService()
