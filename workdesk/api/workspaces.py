"""Workspaces API router: listing, current workspace and memberships."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from workdesk.core.auth import (
    AuthContext, RequirePermission, get_current_context, require_workspace,
)
from workdesk.core.exceptions import ResourceNotFoundError
from workdesk.db.session import get_db
from workdesk.schemas.schemas import Envelope, MemberUpdate, ok
from workdesk.services.audit_service import audit_service
from workdesk.services.workspace_service import workspace_service

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


def _current_workspace_id(context: AuthContext) -> int:
    # Super admins pass the gate without a membership of their own.
    if context.workspace is None:
        raise ResourceNotFoundError("No current workspace")
    return context.workspace.workspace_id


@router.get("", response_model=Envelope)
def list_workspaces(
    db: Session = Depends(get_db),
    context: AuthContext = Depends(get_current_context),
):
    """Workspaces the caller belongs to (every workspace for super admins)."""
    return ok(workspace_service.list_workspaces(db, context.user))


@router.get("/current", response_model=Envelope)
def current_workspace(context: AuthContext = Depends(require_workspace)):
    data = context.workspace.to_dict() if context.workspace else None
    return ok(data)


@router.get("/current/members", response_model=Envelope)
def list_members(
    db: Session = Depends(get_db),
    context: AuthContext = Depends(RequirePermission("users", "view")),
):
    return ok(workspace_service.list_members(db, _current_workspace_id(context)))


@router.put("/current/members/{user_id}", response_model=Envelope)
def update_member(
    user_id: int,
    body: MemberUpdate,
    request: Request,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(RequirePermission("users", "edit")),
):
    """Change a member's role or status in the caller's workspace."""
    workspace_id = _current_workspace_id(context)
    member = workspace_service.update_member(
        db, workspace_id, user_id, role_name=body.role, status=body.status
    )
    audit_service.record(
        db, request, context, "membership.updated", "membership",
        resource_id=member.id,
        new_value=body.model_dump(exclude_none=True),
    )
    return ok(
        {"user_id": member.user_id, "role": member.role, "status": member.status.value},
        "Member updated successfully",
    )
