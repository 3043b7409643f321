"""Roles API router: role registry and permission catalog.

Roles are shared by every workspace, so registry writes are limited to
super admins. Workspace members with ``roles.view`` can read them.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from workdesk.core.auth import AuthContext, RequirePermission, require_super_admin
from workdesk.db.session import get_db
from workdesk.schemas.schemas import (
    Envelope, RoleCreate, RoleOut, RolePermissionsUpdate, RoleUpdate, ok,
)
from workdesk.services.audit_service import audit_service
from workdesk.services.role_service import role_service

router = APIRouter(prefix="/roles", tags=["roles"])

can_view_roles = RequirePermission("roles", "view")


def _count_scope(context: AuthContext) -> Optional[int]:
    # Roles are global; tenants only see member counts for their own workspace.
    return None if context.is_super_admin else context.workspace_id


def _role_payload(db: Session, role, context: AuthContext) -> dict:
    return RoleOut(
        **role_service.describe(db, role, workspace_id=_count_scope(context))
    ).model_dump()


@router.get("", response_model=Envelope)
def list_roles(
    db: Session = Depends(get_db),
    context: AuthContext = Depends(can_view_roles),
):
    """List roles with derived user and permission counts."""
    roles = role_service.list_roles(db, _count_scope(context))
    return ok([RoleOut(**r).model_dump() for r in roles])


# Declared before /{role_id} so "permissions" is not parsed as an id.
@router.get("/permissions/list", response_model=Envelope)
def list_permissions(
    db: Session = Depends(get_db),
    context: AuthContext = Depends(can_view_roles),
):
    """Permission catalog, flat and grouped by module."""
    return ok(role_service.list_permissions(db))


@router.get("/{role_id}", response_model=Envelope)
def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(can_view_roles),
):
    return ok(_role_payload(db, role_service.get_role(db, role_id), context))


@router.post("", response_model=Envelope, status_code=201)
def create_role(
    body: RoleCreate,
    request: Request,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(require_super_admin),
):
    role = role_service.create_role(
        db, body.name, body.display_name, body.description, body.permission_ids
    )
    payload = _role_payload(db, role, context)
    audit_service.record(
        db, request, context, "role.created", "role",
        resource_id=role.id,
        new_value={"name": role.name, "permission_ids": sorted(set(body.permission_ids))},
    )
    return ok(payload, "Role created successfully")


@router.put("/{role_id}", response_model=Envelope)
def update_role(
    role_id: int,
    body: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(require_super_admin),
):
    """Update display name and description; the role key is immutable."""
    role = role_service.update_role(
        db, role_id, body.display_name, body.description, body.name
    )
    payload = _role_payload(db, role, context)
    audit_service.record(
        db, request, context, "role.updated", "role",
        resource_id=role.id,
        new_value=body.model_dump(exclude_none=True),
    )
    return ok(payload, "Role updated successfully")


@router.put("/{role_id}/permissions", response_model=Envelope)
def set_role_permissions(
    role_id: int,
    body: RolePermissionsUpdate,
    request: Request,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(require_super_admin),
):
    """Replace the role's permission set; members see the change immediately."""
    role, changed = role_service.set_role_permissions(db, role_id, body.permission_ids)
    payload = _role_payload(db, role, context)
    if changed:
        audit_service.record(
            db, request, context, "role.permissions_updated", "role",
            resource_id=role.id,
            new_value={"permission_ids": sorted(set(body.permission_ids))},
        )
    return ok(payload, "Role permissions updated successfully")


@router.delete("/{role_id}", response_model=Envelope)
def delete_role(
    role_id: int,
    request: Request,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(require_super_admin),
):
    snapshot = role_service.delete_role(db, role_id)
    audit_service.record(
        db, request, context, "role.deleted", "role",
        resource_id=role_id,
        old_value=snapshot,
    )
    return ok(message="Role deleted successfully")
