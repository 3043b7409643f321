"""Audit service: append-only trail of logins and authorization changes."""

import json
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from workdesk.models.audit_log import AuditLog


def _dump(value: Optional[Any]) -> Optional[str]:
    return json.dumps(value, default=str) if value else None


class AuditService:
    """Records immutable audit log entries."""

    @staticmethod
    def log(
        db: Session,
        action: str,
        resource_type: str,
        resource_id: Optional[Any] = None,
        actor_id: Optional[int] = None,
        actor_email: Optional[str] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        workspace_id: Optional[int] = None,
        request: Optional[Request] = None,
    ) -> AuditLog:
        """Write a single audit log record.

        Args:
            action: e.g. "user.login", "role.permissions_updated"
            resource_type: user, role, workspace, membership

        Commits immediately, after the mutation it describes has committed.
        """
        ip = ua = request_id = None
        if request is not None:
            ip = request.client.host if request.client else None
            ua = request.headers.get("user-agent", "")[:500]
            request_id = getattr(request.state, "request_id", None)

        entry = AuditLog(
            actor_id=actor_id,
            actor_email=actor_email,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            old_value_json=_dump(old_value),
            new_value_json=_dump(new_value),
            request_id=request_id,
            ip_address=ip,
            user_agent=ua,
            workspace_id=workspace_id,
        )
        db.add(entry)
        db.commit()
        return entry

    @staticmethod
    def record(db: Session, request: Request, context, action: str, resource_type: str, **fields) -> AuditLog:
        """Audit an action taken by the authenticated caller in ``context``."""
        fields.setdefault("workspace_id", context.workspace_id)
        return AuditService.log(
            db,
            action,
            resource_type,
            actor_id=context.user.id,
            actor_email=context.user.email,
            request=request,
            **fields,
        )

    @staticmethod
    def query_logs(
        db: Session,
        actor_id: Optional[int] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        workspace_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict[str, Any]:
        """Query audit logs with filters and pagination."""
        query = db.query(AuditLog)

        if actor_id:
            query = query.filter(AuditLog.actor_id == actor_id)
        if action:
            query = query.filter(AuditLog.action.ilike(f"%{action}%"))
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if workspace_id:
            query = query.filter(AuditLog.workspace_id == workspace_id)

        total = query.count()
        logs = (
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"logs": logs, "total": total, "page": page, "page_size": page_size}


audit_service = AuditService()
