"""Subscriptions API router: tenant trial and status administration."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from workdesk.core.auth import AuthContext, require_super_admin
from workdesk.db.session import get_db
from workdesk.schemas.schemas import Envelope, TrialUpdate, WorkspaceStatusUpdate, ok
from workdesk.services.audit_service import audit_service
from workdesk.services.subscription_service import subscription_service

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.get("", response_model=Envelope)
def list_subscriptions(
    db: Session = Depends(get_db),
    context: AuthContext = Depends(require_super_admin),
):
    """All workspaces with their trial and subscription state (super admin only)."""
    return ok(subscription_service.list_subscriptions(db))


@router.patch("/{workspace_id}/trial", response_model=Envelope)
def update_trial(
    workspace_id: int,
    body: TrialUpdate,
    request: Request,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(require_super_admin),
):
    """Extend, shorten or clear a workspace's trial."""
    data = subscription_service.update_trial(db, workspace_id, body.trial_ends_at)
    audit_service.record(
        db, request, context, "workspace.trial_updated", "workspace",
        resource_id=workspace_id,
        new_value={"trial_ends_at": body.trial_ends_at},
        workspace_id=workspace_id,
    )
    return ok(data, "Trial updated successfully")


@router.patch("/{workspace_id}/status", response_model=Envelope)
def update_status(
    workspace_id: int,
    body: WorkspaceStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(require_super_admin),
):
    data = subscription_service.update_status(db, workspace_id, body.status)
    audit_service.record(
        db, request, context, "workspace.status_updated", "workspace",
        resource_id=workspace_id,
        new_value={"status": body.status},
        workspace_id=workspace_id,
    )
    return ok(data, "Workspace status updated successfully")
