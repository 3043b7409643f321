"""Tenant subscription administration for platform operators."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from workdesk.core.exceptions import ResourceNotFoundError, ValidationError
from workdesk.models.user import User
from workdesk.models.workspace import MembershipStatus, Workspace, WorkspaceMember, WorkspaceStatus
from workdesk.services.entitlement import is_allowed

logger = logging.getLogger("workdesk.subscriptions")


def _workspace_out(w: Workspace) -> Dict[str, Any]:
    decision = is_allowed(w)
    return {
        "id": w.id,
        "name": w.name,
        "slug": w.slug,
        "owner_id": w.owner_id,
        "plan_type": w.plan_type.value,
        "status": w.status.value,
        "trial_ends_at": w.trial_ends_at,
        "subscription_id": w.subscription_id,
        "created_at": w.created_at,
        "entitlement": {"allowed": decision.allowed, "reason": decision.reason},
    }


class SubscriptionService:

    @staticmethod
    def _get(db: Session, workspace_id: int) -> Workspace:
        workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
        if workspace is None:
            raise ResourceNotFoundError("Workspace not found")
        return workspace

    @staticmethod
    def list_subscriptions(db: Session) -> List[Dict[str, Any]]:
        """Every workspace with trial/subscription state and active user count."""
        user_counts = dict(
            db.query(WorkspaceMember.workspace_id, func.count(WorkspaceMember.id))
            .filter(WorkspaceMember.status == MembershipStatus.active)
            .group_by(WorkspaceMember.workspace_id)
            .all()
        )
        rows = (
            db.query(Workspace, User)
            .outerjoin(User, User.id == Workspace.owner_id)
            .order_by(Workspace.created_at.desc(), Workspace.id.desc())
            .all()
        )
        result = []
        for workspace, owner in rows:
            item = _workspace_out(workspace)
            item["owner_name"] = owner.full_name if owner else None
            item["owner_email"] = owner.email if owner else None
            item["user_count"] = user_counts.get(workspace.id, 0)
            result.append(item)
        return result

    @staticmethod
    def update_trial(db: Session, workspace_id: int, trial_ends_at: Optional[datetime]) -> Dict[str, Any]:
        """Set or clear a workspace's trial end.

        The column holds naive UTC, so offset-aware values are converted first.
        """
        workspace = SubscriptionService._get(db, workspace_id)
        if trial_ends_at is not None and trial_ends_at.tzinfo is not None:
            trial_ends_at = trial_ends_at.astimezone(timezone.utc).replace(tzinfo=None)
        workspace.trial_ends_at = trial_ends_at
        db.commit()
        db.refresh(workspace)
        logger.info("Trial end for workspace %s set to %s", workspace_id, trial_ends_at)
        return _workspace_out(workspace)

    @staticmethod
    def update_status(db: Session, workspace_id: int, status: str) -> Dict[str, Any]:
        workspace = SubscriptionService._get(db, workspace_id)
        try:
            workspace.status = WorkspaceStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid workspace status '{status}'")
        db.commit()
        db.refresh(workspace)
        logger.info("Workspace %s status set to %s", workspace_id, status)
        return _workspace_out(workspace)


subscription_service = SubscriptionService()
