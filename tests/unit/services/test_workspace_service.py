"""Tests for workspace resolution and membership administration."""

from datetime import datetime, timedelta, timezone

import pytest

from workdesk.core.exceptions import (
    RegistryInvariantError, ResourceNotFoundError, ValidationError,
)
from workdesk.models.workspace import MembershipStatus, WorkspaceStatus
from workdesk.services.workspace_service import (
    DefaultRole, WorkspaceRole, effective_role, generate_slug, workspace_service,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TestResolve:
    """Tests for picking the user's current workspace."""

    def test_no_memberships(self, db, factory) -> None:
        user = factory.user()
        assert workspace_service.resolve(db, user.id) is None

    def test_single_active_membership(self, db, factory) -> None:
        user = factory.user()
        ws = factory.workspace(user, name="Acme")
        factory.member(ws, user, role="owner")

        context = workspace_service.resolve(db, user.id)
        assert context.workspace_id == ws.id
        assert context.name == "Acme"
        assert context.role == "owner"
        assert context.to_dict()["has_subscription"] is False

    def test_most_recently_joined_wins(self, db, factory) -> None:
        user = factory.user()
        older = factory.workspace(user)
        newer = factory.workspace(user)
        factory.member(older, user, role="owner", joined_at=utcnow() - timedelta(days=5))
        factory.member(newer, user, role="viewer", joined_at=utcnow())

        context = workspace_service.resolve(db, user.id)
        assert context.workspace_id == newer.id
        assert context.role == "viewer"

    def test_tie_broken_by_latest_membership(self, db, factory) -> None:
        user = factory.user()
        joined = utcnow()
        first = factory.workspace(user)
        second = factory.workspace(user)
        factory.member(first, user, joined_at=joined)
        factory.member(second, user, joined_at=joined)

        assert workspace_service.resolve(db, user.id).workspace_id == second.id

    def test_inactive_membership_skipped(self, db, factory) -> None:
        user = factory.user()
        current = factory.workspace(user)
        newer = factory.workspace(user)
        factory.member(current, user, joined_at=utcnow() - timedelta(days=1))
        factory.member(newer, user, status=MembershipStatus.inactive, joined_at=utcnow())

        assert workspace_service.resolve(db, user.id).workspace_id == current.id

    def test_suspended_workspace_skipped(self, db, factory) -> None:
        user = factory.user()
        ws = factory.workspace(user, status=WorkspaceStatus.suspended)
        factory.member(ws, user, role="owner")
        assert workspace_service.resolve(db, user.id) is None

    def test_reads_live_state(self, db, factory) -> None:
        """A membership change is visible to the next resolve call."""
        user = factory.user()
        ws = factory.workspace(user)
        member = factory.member(ws, user, role="viewer")
        assert workspace_service.resolve(db, user.id) is not None

        member.status = MembershipStatus.inactive
        db.commit()
        assert workspace_service.resolve(db, user.id) is None


class TestEffectiveRole:
    """Tests for choosing between membership role and legacy label."""

    def test_membership_role_when_workspace_resolves(self, db, factory) -> None:
        user = factory.user(role="client")
        ws = factory.workspace(user)
        factory.member(ws, user, role="manager")
        role = effective_role(user, workspace_service.resolve(db, user.id))
        assert role == WorkspaceRole("manager")
        assert role.source == "workspace"

    def test_legacy_label_without_workspace(self, factory) -> None:
        user = factory.user(role="client")
        role = effective_role(user, None)
        assert role == DefaultRole("client")
        assert role.source == "default"


class TestSlugs:
    """Tests for workspace slug generation."""

    def test_generate_slug(self) -> None:
        assert generate_slug("  Acme Corp!  ") == "acme-corp"
        assert generate_slug("a -- b") == "a-b"
        assert generate_slug("!!!") == "workspace"

    def test_unique_slug_suffixes(self, db, factory) -> None:
        user = factory.user()
        ws = factory.workspace(user)
        ws.slug = "acme"
        db.commit()
        assert workspace_service.generate_unique_slug(db, "Acme") == "acme-1"


class TestListWorkspaces:
    """Tests for workspace listing."""

    def test_member_sees_own_active_workspaces(self, db, factory) -> None:
        user = factory.user()
        other = factory.user()
        mine = factory.workspace(user)
        factory.workspace(other)
        factory.member(mine, user, role="owner")

        result = workspace_service.list_workspaces(db, user)
        assert [w["id"] for w in result] == [mine.id]
        assert result[0]["user_role"] == "owner"

    def test_super_admin_sees_all(self, db, factory) -> None:
        admin = factory.user(super_admin=True)
        owner = factory.user()
        factory.workspace(owner)
        factory.workspace(owner)
        assert len(workspace_service.list_workspaces(db, admin)) == 2


class TestUpdateMember:
    """Tests for changing memberships inside one workspace."""

    def test_change_role(self, db, factory) -> None:
        owner = factory.user()
        user = factory.user()
        ws = factory.workspace(owner)
        factory.member(ws, owner, role="owner")
        factory.member(ws, user, role="viewer")

        member = workspace_service.update_member(db, ws.id, user.id, role_name="manager")
        assert member.role == "manager"
        assert workspace_service.resolve(db, user.id).role == "manager"

    def test_deactivate_member(self, db, factory) -> None:
        owner = factory.user()
        user = factory.user()
        ws = factory.workspace(owner)
        factory.member(ws, user)

        workspace_service.update_member(db, ws.id, user.id, status="inactive")
        assert workspace_service.resolve(db, user.id) is None

    def test_other_tenant_member_not_found(self, db, factory) -> None:
        owner = factory.user()
        outsider = factory.user()
        ws = factory.workspace(owner)
        other = factory.workspace(outsider)
        factory.member(other, outsider)

        with pytest.raises(ResourceNotFoundError):
            workspace_service.update_member(db, ws.id, outsider.id, role_name="manager")

    def test_owner_membership_protected(self, db, factory) -> None:
        owner = factory.user()
        ws = factory.workspace(owner)
        factory.member(ws, owner, role="owner")
        with pytest.raises(RegistryInvariantError):
            workspace_service.update_member(db, ws.id, owner.id, role_name="viewer")

    def test_unknown_role(self, db, factory) -> None:
        owner = factory.user()
        user = factory.user()
        ws = factory.workspace(owner)
        factory.member(ws, user)
        with pytest.raises(ResourceNotFoundError):
            workspace_service.update_member(db, ws.id, user.id, role_name="nope")

    def test_invalid_status_and_empty_update(self, db, factory) -> None:
        owner = factory.user()
        user = factory.user()
        ws = factory.workspace(owner)
        factory.member(ws, user)
        with pytest.raises(ValidationError):
            workspace_service.update_member(db, ws.id, user.id, status="banned")
        with pytest.raises(ValidationError):
            workspace_service.update_member(db, ws.id, user.id)
