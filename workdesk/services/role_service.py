"""Role registry: roles, the permission catalog, and role grants."""

import logging
import re
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from workdesk.core import permissions as perms
from workdesk.core.exceptions import (
    RegistryInvariantError, ResourceConflictError, ResourceNotFoundError, ValidationError,
)
from workdesk.models.role import Permission, Role, RolePermission
from workdesk.models.workspace import MembershipStatus, WorkspaceMember

logger = logging.getLogger("workdesk.roles")

ADMIN_ROLE = "admin"
ROLE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{1,49}$")


def _permission_out(p: Permission) -> Dict[str, Any]:
    return {"id": p.id, "module": p.module, "action": p.action, "description": p.description}


class RoleService:
    """Administers roles and their grants.

    Nothing here is cached: a grant change is visible to the very next
    request that evaluates permissions.
    """

    @staticmethod
    def permissions_for_role(db: Session, role_name: Optional[str]) -> FrozenSet[perms.Permission]:
        """Effective permission set granted to ``role_name`` by the grant table."""
        if not role_name:
            return frozenset()
        rows = (
            db.query(Permission.module, Permission.action)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .filter(Role.name == role_name)
            .all()
        )
        return frozenset(perms.Permission(module, action) for module, action in rows)

    @staticmethod
    def all_permissions(db: Session) -> FrozenSet[perms.Permission]:
        rows = db.query(Permission.module, Permission.action).all()
        return frozenset(perms.Permission(module, action) for module, action in rows)

    @staticmethod
    def get_role(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise ResourceNotFoundError("Role not found")
        return role

    @staticmethod
    def _user_counts(db: Session, workspace_id: Optional[int] = None) -> Dict[str, int]:
        """Active members per role; limited to one workspace when ``workspace_id`` is set."""
        query = db.query(
            WorkspaceMember.role, func.count(func.distinct(WorkspaceMember.user_id))
        ).filter(WorkspaceMember.status == MembershipStatus.active)
        if workspace_id is not None:
            query = query.filter(WorkspaceMember.workspace_id == workspace_id)
        rows = query.group_by(WorkspaceMember.role).all()
        return {name: count for name, count in rows}

    @staticmethod
    def _permission_counts(db: Session) -> Dict[int, int]:
        rows = (
            db.query(RolePermission.role_id, func.count(RolePermission.id))
            .group_by(RolePermission.role_id)
            .all()
        )
        return {role_id: count for role_id, count in rows}

    @staticmethod
    def _role_permissions(db: Session, role_id: int) -> List[Permission]:
        return (
            db.query(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .filter(RolePermission.role_id == role_id)
            .order_by(Permission.module, Permission.action)
            .all()
        )

    @staticmethod
    def describe(
        db: Session,
        role: Role,
        include_permissions: bool = True,
        workspace_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Role as returned by the API; counts are derived on every call."""
        data = {
            "id": role.id,
            "name": role.name,
            "display_name": role.display_name,
            "description": role.description,
            "is_system_role": role.is_system_role,
            "user_count": RoleService._user_counts(db, workspace_id).get(role.name, 0),
            "permission_count": RoleService._permission_counts(db).get(role.id, 0),
            "created_at": role.created_at,
            "updated_at": role.updated_at,
        }
        if include_permissions:
            data["permissions"] = [
                _permission_out(p) for p in RoleService._role_permissions(db, role.id)
            ]
        return data

    @staticmethod
    def list_roles(db: Session, workspace_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """All roles with user/permission counts, ``admin`` first.

        ``user_count`` covers every workspace unless ``workspace_id`` is given.
        """
        user_counts = RoleService._user_counts(db, workspace_id)
        permission_counts = RoleService._permission_counts(db)
        roles = db.query(Role).all()
        roles.sort(key=lambda r: (r.name != ADMIN_ROLE, r.name))
        return [
            {
                "id": r.id,
                "name": r.name,
                "display_name": r.display_name,
                "description": r.description,
                "is_system_role": r.is_system_role,
                "user_count": user_counts.get(r.name, 0),
                "permission_count": permission_counts.get(r.id, 0),
                "created_at": r.created_at,
                "updated_at": r.updated_at,
            }
            for r in roles
        ]

    @staticmethod
    def list_permissions(db: Session) -> Dict[str, Any]:
        """The permission catalog, flat and grouped by module."""
        rows = db.query(Permission).order_by(Permission.module, Permission.action).all()
        flat = [_permission_out(p) for p in rows]
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for item in flat:
            grouped.setdefault(item["module"], []).append(item)
        return {"permissions": flat, "grouped": grouped}

    @staticmethod
    def _resolve_permission_ids(db: Session, permission_ids: Iterable[int]) -> List[int]:
        wanted = sorted(set(permission_ids))
        if not wanted:
            return []
        found = {
            pid for (pid,) in db.query(Permission.id).filter(Permission.id.in_(wanted)).all()
        }
        missing = [pid for pid in wanted if pid not in found]
        if missing:
            raise ValidationError(
                "Unknown permission ids",
                errors=[{"field": "permission_ids", "value": pid} for pid in missing],
            )
        return wanted

    @staticmethod
    def create_role(
        db: Session,
        name: str,
        display_name: str,
        description: Optional[str] = None,
        permission_ids: Optional[Iterable[int]] = None,
    ) -> Role:
        if name == ADMIN_ROLE:
            raise RegistryInvariantError("The admin role name is reserved")
        if not ROLE_NAME_PATTERN.match(name):
            raise ValidationError(
                "Role name must be 2-50 characters of lowercase letters, digits and underscores"
            )
        if db.query(Role.id).filter(Role.name == name).first() is not None:
            raise ResourceConflictError("Role with this name already exists")

        ids = RoleService._resolve_permission_ids(db, permission_ids or [])
        role = Role(
            name=name,
            display_name=display_name,
            description=description,
            is_system_role=False,
        )
        try:
            db.add(role)
            db.flush()
            db.add_all(RolePermission(role_id=role.id, permission_id=pid) for pid in ids)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(role)
        logger.info("Role created name=%s permissions=%d", name, len(ids))
        return role

    @staticmethod
    def update_role(
        db: Session,
        role_id: int,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Role:
        role = RoleService.get_role(db, role_id)
        if role.name == ADMIN_ROLE:
            raise RegistryInvariantError("Cannot modify the admin role. This role is protected.")
        if name is not None and name != role.name:
            raise RegistryInvariantError("Role name cannot be changed once created")
        if display_name is None and description is None:
            raise ValidationError("No fields to update")

        if display_name is not None:
            role.display_name = display_name
        if description is not None:
            role.description = description
        db.commit()
        db.refresh(role)
        return role

    @staticmethod
    def delete_role(db: Session, role_id: int) -> Dict[str, Any]:
        """Delete a custom role; returns a snapshot of what was removed."""
        role = RoleService.get_role(db, role_id)
        if role.name == ADMIN_ROLE:
            raise RegistryInvariantError("Cannot delete the admin role. This role is protected.")
        if role.is_system_role:
            raise RegistryInvariantError("Cannot delete a system role")

        in_use = (
            db.query(func.count(WorkspaceMember.id))
            .filter(WorkspaceMember.role == role.name)
            .scalar()
        )
        if in_use:
            raise RegistryInvariantError(
                "Cannot delete role that is assigned to workspace members. "
                "Please reassign those members first."
            )

        snapshot = {"id": role.id, "name": role.name, "display_name": role.display_name}
        try:
            db.query(RolePermission).filter(RolePermission.role_id == role.id).delete(
                synchronize_session=False
            )
            db.delete(role)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Role deleted name=%s", snapshot["name"])
        return snapshot

    @staticmethod
    def set_role_permissions(
        db: Session, role_id: int, permission_ids: Iterable[int]
    ) -> Tuple[Role, bool]:
        """Replace a role's grants with exactly ``permission_ids``.

        Runs as one transaction so readers see either the old set or the
        new one. Returns ``(role, changed)``; an identical set writes nothing.
        """
        role = RoleService.get_role(db, role_id)
        if role.name == ADMIN_ROLE:
            raise RegistryInvariantError(
                "Cannot modify admin role permissions. This role is protected."
            )

        ids = RoleService._resolve_permission_ids(db, permission_ids)
        current = {
            pid for (pid,) in db.query(RolePermission.permission_id)
            .filter(RolePermission.role_id == role.id)
            .all()
        }
        if current == set(ids):
            return role, False

        try:
            db.query(RolePermission).filter(RolePermission.role_id == role.id).delete(
                synchronize_session=False
            )
            db.add_all(RolePermission(role_id=role.id, permission_id=pid) for pid in ids)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(role)
        logger.info(
            "Role permissions replaced name=%s before=%d after=%d",
            role.name, len(current), len(ids),
        )
        return role, True


role_service = RoleService()
