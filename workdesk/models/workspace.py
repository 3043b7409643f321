"""Workspace (tenant) and WorkspaceMember models."""

import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Enum, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from workdesk.db.base import Base


class PlanType(str, enum.Enum):
    free = "free"
    basic = "basic"
    premium = "premium"
    enterprise = "enterprise"


class WorkspaceStatus(str, enum.Enum):
    active = "active"
    suspended = "suspended"
    cancelled = "cancelled"


class MembershipStatus(str, enum.Enum):
    pending = "pending"
    active = "active"
    inactive = "inactive"


class Workspace(Base):
    """An isolated customer organization."""
    __tablename__ = "workspaces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_type = Column(Enum(PlanType), default=PlanType.free, nullable=False)
    status = Column(Enum(WorkspaceStatus), default=WorkspaceStatus.active, nullable=False, index=True)
    trial_ends_at = Column(DateTime, nullable=True)
    subscription_id = Column(String(255), nullable=True)  # set by billing, read-only here
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    owner = relationship("User", foreign_keys=[owner_id])
    members = relationship("WorkspaceMember", back_populates="workspace", lazy="selectin")


class WorkspaceMember(Base):
    """Binding of a user to a workspace with a role and status."""
    __tablename__ = "workspace_members"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(50), ForeignKey("roles.name"), nullable=False, index=True)
    status = Column(Enum(MembershipStatus), default=MembershipStatus.active, nullable=False, index=True)
    invited_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    joined_at = Column(DateTime, server_default=func.now(), nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    workspace = relationship("Workspace", back_populates="members")
    user = relationship("User", back_populates="memberships", foreign_keys=[user_id])
