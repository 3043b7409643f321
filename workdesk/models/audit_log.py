"""Audit log model."""

from sqlalchemy import Column, Index, Integer, String, Text, DateTime, ForeignKey, func
from workdesk.db.base import Base


class AuditLog(Base):
    """Who changed which role, membership or workspace, and when.

    Rows are only ever inserted. Values are stored as JSON text snapshots,
    never as references, so an entry survives deletion of its subject.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_workspace_created", "workspace_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id", ondelete="SET NULL"), nullable=True)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    actor_email = Column(String(255), nullable=True)
    action = Column(String(100), nullable=False, index=True)  # "<resource>.<verb>", e.g. "role.deleted"
    resource_type = Column(String(50), nullable=False, index=True)
    resource_id = Column(String(100), nullable=True)
    old_value_json = Column(Text, nullable=True)
    new_value_json = Column(Text, nullable=True)
    request_id = Column(String(64), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
