"""Admin / Audit API router."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workdesk.core.auth import AuthContext, require_super_admin
from workdesk.db.session import get_db
from workdesk.schemas.schemas import AuditLogOut, Envelope, ok
from workdesk.services.audit_service import audit_service

logger = logging.getLogger("workdesk.admin")

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/audit", response_model=Envelope)
def get_audit_logs(
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    actor_id: Optional[int] = Query(None),
    workspace_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    context: AuthContext = Depends(require_super_admin),
):
    """Query audit logs (super admin only)."""
    result = audit_service.query_logs(
        db, actor_id, action, resource_type, workspace_id, page, page_size,
    )
    return ok({
        "logs": [AuditLogOut.model_validate(log).model_dump() for log in result["logs"]],
        "total": result["total"],
        "page": result["page"],
        "page_size": result["page_size"],
    })


@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Database connectivity check."""
    db_ok = True
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Database health check failed: %s", e)
        db_ok = False

    return {
        "database": "ok" if db_ok else "error",
        "status": "healthy" if db_ok else "degraded",
    }
