"""Shared fixtures: in-memory SQLite store, seeded catalog, API client."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DEBUG", "false")

from datetime import datetime, timedelta, timezone
from typing import Dict, Generator, Optional

import pytest
from fastapi import APIRouter, Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import workdesk.models  # noqa: F401
from workdesk.core.auth import AuthContext, RequirePermission
from workdesk.core.security import create_access_token, hash_password
from workdesk.db.base import Base
from workdesk.db.seeds.seed_roles import seed_roles
from workdesk.db.session import get_db
from workdesk.main import app
from workdesk.models.role import Permission, Role, RolePermission
from workdesk.models.user import User
from workdesk.models.workspace import (
    MembershipStatus, PlanType, Workspace, WorkspaceMember, WorkspaceStatus,
)

PASSWORD = "correct-horse"

# Workspace-scoped route used to exercise the full middleware chain.
projects_router = APIRouter()


@projects_router.get("/api/sample/projects")
def read_projects(context: AuthContext = Depends(RequirePermission("projects", "read"))):
    return {"success": True, "data": {"workspace_id": context.workspace_id}}


app.include_router(projects_router)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Factory:
    """Builds users, workspaces, memberships and roles directly in the store."""

    def __init__(self, db: Session):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def user(
        self,
        email: Optional[str] = None,
        password: str = PASSWORD,
        verified: bool = True,
        super_admin: bool = False,
        active: bool = True,
        role: str = "viewer",
    ) -> User:
        n = self._next()
        email = email or f"user{n}@example.com"
        user = User(
            username=email,
            email=email,
            hashed_password=hash_password(password),
            full_name=f"User {n}",
            role=role,
            is_super_admin=super_admin,
            email_verified=verified,
            is_active=active,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def workspace(
        self,
        owner: User,
        name: Optional[str] = None,
        trial_ends_at: Optional[datetime] = None,
        subscription_id: Optional[str] = None,
        status: WorkspaceStatus = WorkspaceStatus.active,
        trial_days: Optional[int] = 30,
    ) -> Workspace:
        n = self._next()
        if trial_ends_at is None and trial_days is not None:
            trial_ends_at = utcnow() + timedelta(days=trial_days)
        workspace = Workspace(
            name=name or f"Workspace {n}",
            slug=f"workspace-{n}",
            owner_id=owner.id,
            plan_type=PlanType.free,
            status=status,
            trial_ends_at=trial_ends_at,
            subscription_id=subscription_id,
        )
        self.db.add(workspace)
        self.db.commit()
        return workspace

    def member(
        self,
        workspace: Workspace,
        user: User,
        role: str = "viewer",
        status: MembershipStatus = MembershipStatus.active,
        joined_at: Optional[datetime] = None,
    ) -> WorkspaceMember:
        member = WorkspaceMember(
            workspace_id=workspace.id,
            user_id=user.id,
            role=role,
            status=status,
            joined_at=joined_at or utcnow(),
        )
        self.db.add(member)
        self.db.commit()
        return member

    def permission(self, module: str, action: str) -> Permission:
        existing = (
            self.db.query(Permission)
            .filter(Permission.module == module, Permission.action == action)
            .first()
        )
        if existing:
            return existing
        permission = Permission(module=module, action=action)
        self.db.add(permission)
        self.db.commit()
        return permission

    def role(self, name: str, grants=(), system: bool = False) -> Role:
        role = Role(name=name, display_name=name.title(), is_system_role=system)
        self.db.add(role)
        self.db.flush()
        for module, action in grants:
            self.db.add(RolePermission(role_id=role.id, permission_id=self.permission(module, action).id))
        self.db.commit()
        return role


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    """Session on a fresh database with the permission catalog and system roles."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    seed_roles(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def factory(db: Session) -> Factory:
    return Factory(db)


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def editor_setup(factory: Factory) -> Dict[str, object]:
    """Verified user who is an active 'editor' (projects.read) in a trial workspace."""
    factory.role("editor", grants=[("projects", "read")])
    owner = factory.user()
    user = factory.user(email="editor@example.com")
    workspace = factory.workspace(owner, name="Acme")
    factory.member(workspace, owner, role="owner")
    member = factory.member(workspace, user, role="editor")
    return {"user": user, "workspace": workspace, "member": member, "owner": owner}


@pytest.fixture
def auth_headers():
    """Bearer header factory for a user, optionally binding a workspace id."""

    def _headers(user: User, workspace_id: Optional[int] = None) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id, workspace_id)}"}

    return _headers


@pytest.fixture
def password() -> str:
    return PASSWORD
