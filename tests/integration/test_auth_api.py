"""HTTP tests for login, registration and the request authorization chain."""

from datetime import datetime, timedelta, timezone

from workdesk.models.audit_log import AuditLog
from workdesk.models.user import User
from workdesk.models.workspace import MembershipStatus, WorkspaceStatus

PROJECTS_URL = "/api/sample/projects"


def _past(days: int = 1) -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=days)


class TestLogin:
    """Tests for POST /api/auth/login."""

    def test_login_returns_token_and_workspace(self, client, editor_setup, password) -> None:
        resp = client.post("/api/auth/login", json={"username": "editor@example.com", "password": password})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        data = body["data"]
        assert data["token"]
        assert data["refresh_token"]
        assert data["user"]["email"] == "editor@example.com"
        assert "hashed_password" not in data["user"]
        assert data["workspace"]["id"] == editor_setup["workspace"].id
        assert data["workspace"]["role"] == "editor"
        assert data["workspace"]["entitlement"] == {"allowed": True, "reason": None}

    def test_wrong_password_and_unknown_user_look_the_same(self, client, editor_setup) -> None:
        wrong = client.post("/api/auth/login", json={"username": "editor@example.com", "password": "nope"})
        unknown = client.post("/api/auth/login", json={"username": "ghost@example.com", "password": "nope"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json() == {"success": False, "message": "Invalid credentials"}

    def test_inactive_user_cannot_login(self, client, factory, password) -> None:
        factory.user(email="gone@example.com", active=False)
        resp = client.post("/api/auth/login", json={"username": "gone@example.com", "password": password})
        assert resp.status_code == 401

    def test_unverified_email_blocks_login(self, client, factory, password) -> None:
        factory.user(email="new@example.com", verified=False)
        resp = client.post("/api/auth/login", json={"username": "new@example.com", "password": password})
        assert resp.status_code == 403
        body = resp.json()
        assert body["success"] is False
        assert body["requiresVerification"] is True
        assert "token" not in body

    def test_refused_login_leaves_last_login_untouched(self, client, db, factory, password) -> None:
        user = factory.user(email="new@example.com", verified=False)
        client.post("/api/auth/login", json={"username": "new@example.com", "password": password})
        db.refresh(user)
        assert user.last_login_at is None

    def test_successful_login_records_last_login(self, client, db, editor_setup, password) -> None:
        client.post("/api/auth/login", json={"username": "editor@example.com", "password": password})
        db.refresh(editor_setup["user"])
        assert editor_setup["user"].last_login_at is not None

    def test_unverified_super_admin_can_login(self, client, factory, password) -> None:
        factory.user(email="ops@example.com", verified=False, super_admin=True)
        resp = client.post("/api/auth/login", json={"username": "ops@example.com", "password": password})
        assert resp.status_code == 200
        assert resp.json()["data"]["workspace"] is None

    def test_expired_trial_still_logs_in(self, client, db, editor_setup, password) -> None:
        """Login reports the gate verdict instead of refusing."""
        editor_setup["workspace"].trial_ends_at = _past()
        db.commit()
        resp = client.post("/api/auth/login", json={"username": "editor@example.com", "password": password})
        assert resp.status_code == 200
        assert resp.json()["data"]["workspace"]["entitlement"] == {
            "allowed": False,
            "reason": "trial_expired",
        }

    def test_missing_fields_is_validation_error(self, client) -> None:
        resp = client.post("/api/auth/login", json={"username": "x"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["message"] == "Validation error"
        assert body["errors"]


class TestRegistration:
    """Tests for registration and email verification."""

    def test_register_verify_login(self, client, db) -> None:
        resp = client.post("/api/auth/register", json={
            "email": "Founder@Example.com",
            "password": "founder-pass",
            "full_name": "Fay Founder",
            "workspace_name": "Founder Co",
        })
        assert resp.status_code == 201
        assert resp.json()["data"]["requires_verification"] is True

        login = {"username": "founder@example.com", "password": "founder-pass"}
        assert client.post("/api/auth/login", json=login).status_code == 403

        user = db.query(User).filter(User.email == "founder@example.com").one()
        token = user.email_verification_token
        verify = client.get("/api/auth/verify-email", params={"token": token})
        assert verify.status_code == 200

        resp = client.post("/api/auth/login", json=login)
        assert resp.status_code == 200
        workspace = resp.json()["data"]["workspace"]
        assert workspace["name"] == "Founder Co"
        assert workspace["slug"] == "founder-co"
        assert workspace["role"] == "owner"
        assert workspace["entitlement"]["allowed"] is True

    def test_duplicate_email(self, client, factory) -> None:
        factory.user(email="taken@example.com")
        resp = client.post("/api/auth/register", json={
            "email": "taken@example.com",
            "password": "whatever1",
            "full_name": "Someone",
            "workspace_name": "Other",
        })
        assert resp.status_code == 409

    def test_password_over_bcrypt_limit(self, client, db) -> None:
        for secret in ("x" * 80, "\u00e9" * 40):
            resp = client.post("/api/auth/register", json={
                "email": "long@example.com",
                "password": secret,
                "full_name": "Long Secret",
                "workspace_name": "Long Co",
            })
            assert resp.status_code == 400
            assert resp.json()["message"] == "Validation error"
        assert db.query(User).filter(User.email == "long@example.com").count() == 0

    def test_verify_with_bad_token(self, client) -> None:
        assert client.get("/api/auth/verify-email", params={"token": "bogus"}).status_code == 400
        assert client.get("/api/auth/verify-email").status_code == 400

    def test_resend_is_silent_for_unknown_email(self, client) -> None:
        resp = client.post("/api/auth/resend-verification", json={"email": "nobody@example.com"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True


class TestAuthorizationChain:
    """Tests for token -> user -> workspace -> entitlement -> permission."""

    def test_happy_path(self, client, editor_setup, auth_headers) -> None:
        resp = client.get(PROJECTS_URL, headers=auth_headers(editor_setup["user"]))
        assert resp.status_code == 200
        assert resp.json()["data"]["workspace_id"] == editor_setup["workspace"].id

    def test_missing_token(self, client) -> None:
        resp = client.get(PROJECTS_URL)
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "message": "Access token required"}
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_token(self, client) -> None:
        resp = client.get(PROJECTS_URL, headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid or expired token"

    def test_deactivated_user_rejected(self, client, db, editor_setup, auth_headers) -> None:
        headers = auth_headers(editor_setup["user"])
        editor_setup["user"].is_active = False
        db.commit()
        assert client.get(PROJECTS_URL, headers=headers).status_code == 401

    def test_trial_expired(self, client, db, editor_setup, auth_headers) -> None:
        ends = _past(2)
        editor_setup["workspace"].trial_ends_at = ends
        db.commit()

        resp = client.get(PROJECTS_URL, headers=auth_headers(editor_setup["user"]))
        assert resp.status_code == 403
        body = resp.json()
        assert body["trialExpired"] is True
        assert body["code"] == "TRIAL_EXPIRED"
        assert body["trial_ends_at"].startswith(ends.isoformat()[:19])

    def test_subscription_overrides_expired_trial(self, client, db, editor_setup, auth_headers) -> None:
        editor_setup["workspace"].trial_ends_at = _past()
        editor_setup["workspace"].subscription_id = "sub_live"
        db.commit()
        assert client.get(PROJECTS_URL, headers=auth_headers(editor_setup["user"])).status_code == 200

    def test_profile_reachable_with_expired_trial(self, client, db, editor_setup, auth_headers) -> None:
        editor_setup["workspace"].trial_ends_at = _past()
        db.commit()
        resp = client.get("/api/auth/me", headers=auth_headers(editor_setup["user"]))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["entitlement"]["reason"] == "trial_expired"
        assert data["workspace"]["id"] == editor_setup["workspace"].id

    def test_no_workspace(self, client, factory, auth_headers) -> None:
        loner = factory.user()
        resp = client.get(PROJECTS_URL, headers=auth_headers(loner))
        assert resp.status_code == 403
        body = resp.json()
        assert body["code"] == "NO_WORKSPACE"
        assert body["trialExpired"] is False

    def test_membership_deactivated_between_requests(self, client, db, editor_setup, auth_headers) -> None:
        headers = auth_headers(editor_setup["user"], editor_setup["workspace"].id)
        assert client.get(PROJECTS_URL, headers=headers).status_code == 200

        editor_setup["member"].status = MembershipStatus.inactive
        db.commit()
        resp = client.get(PROJECTS_URL, headers=headers)
        assert resp.status_code == 403
        assert resp.json()["code"] == "NO_WORKSPACE"

    def test_suspended_workspace(self, client, db, editor_setup, auth_headers) -> None:
        editor_setup["workspace"].status = WorkspaceStatus.suspended
        db.commit()
        resp = client.get(PROJECTS_URL, headers=auth_headers(editor_setup["user"]))
        assert resp.status_code == 403
        assert resp.json()["code"] == "NO_WORKSPACE"

    def test_missing_permission(self, client, factory, editor_setup, auth_headers) -> None:
        viewer = factory.user()
        factory.member(editor_setup["workspace"], viewer, role="viewer")
        resp = client.get(PROJECTS_URL, headers=auth_headers(viewer))
        assert resp.status_code == 403
        assert resp.json() == {"success": False, "message": "Insufficient permissions"}

    def test_admin_role_label_grants_nothing(self, client, factory, editor_setup, auth_headers) -> None:
        """Holding the 'admin' role name is not the super-admin flag."""
        user = factory.user(role="admin")
        factory.member(editor_setup["workspace"], user, role="admin")
        assert client.get(PROJECTS_URL, headers=auth_headers(user)).status_code == 403

    def test_super_admin_bypasses_everything(self, client, factory, auth_headers) -> None:
        admin = factory.user(super_admin=True)
        resp = client.get(PROJECTS_URL, headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["data"]["workspace_id"] is None


class TestSessionLifecycle:
    """Tests for permissions payload, refresh, logout and password change."""

    def test_permissions_payload(self, client, editor_setup, auth_headers) -> None:
        resp = client.get("/api/auth/permissions", headers=auth_headers(editor_setup["user"]))
        data = resp.json()["data"]
        assert data["role"] == "editor"
        assert data["role_source"] == "workspace"
        assert data["is_super_admin"] is False
        assert data["permissions"] == [{"module": "projects", "action": "read"}]
        assert data["navigation"]["projects"] is True
        assert data["navigation"]["invoices"] is False

    def test_refresh_then_logout_revokes(self, client, editor_setup, password) -> None:
        login = client.post("/api/auth/login", json={"username": "editor@example.com", "password": password})
        tokens = login.json()["data"]

        refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 200
        assert refreshed.json()["data"]["token"]

        headers = {"Authorization": f"Bearer {tokens['token']}"}
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        again = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert again.status_code == 401

    def test_access_token_not_usable_as_refresh(self, client, editor_setup, auth_headers) -> None:
        access = auth_headers(editor_setup["user"])["Authorization"].split(" ", 1)[1]
        assert client.post("/api/auth/refresh", json={"refresh_token": access}).status_code == 401

    def test_change_password(self, client, editor_setup, auth_headers, password) -> None:
        headers = auth_headers(editor_setup["user"])
        mismatch = client.put("/api/auth/change-password", headers=headers, json={
            "current_password": password,
            "new_password": "brand-new-pass",
            "confirm_password": "different",
        })
        assert mismatch.status_code == 400

        wrong = client.put("/api/auth/change-password", headers=headers, json={
            "current_password": "not-it",
            "new_password": "brand-new-pass",
            "confirm_password": "brand-new-pass",
        })
        assert wrong.status_code == 400

        ok = client.put("/api/auth/change-password", headers=headers, json={
            "current_password": password,
            "new_password": "brand-new-pass",
            "confirm_password": "brand-new-pass",
        })
        assert ok.status_code == 200
        login = client.post("/api/auth/login", json={"username": "editor@example.com", "password": "brand-new-pass"})
        assert login.status_code == 200

    def test_new_password_over_bcrypt_limit(self, client, editor_setup, auth_headers, password) -> None:
        resp = client.put("/api/auth/change-password", headers=auth_headers(editor_setup["user"]), json={
            "current_password": password,
            "new_password": "x" * 80,
            "confirm_password": "x" * 80,
        })
        assert resp.status_code == 400


class TestProfileUpdate:
    """Tests for PUT /api/auth/profile."""

    def test_change_full_name(self, client, db, editor_setup, auth_headers) -> None:
        headers = auth_headers(editor_setup["user"])
        resp = client.put("/api/auth/profile", headers=headers, json={"full_name": "  Eddie Editor "})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user"]["full_name"] == "Eddie Editor"
        assert data["requires_verification"] is False

        me = client.get("/api/auth/me", headers=headers).json()["data"]
        assert me["full_name"] == "Eddie Editor"
        assert me["email_verified"] is True
        assert db.query(AuditLog).filter(AuditLog.action == "user.profile_updated").count() == 1

    def test_change_email_requires_verification(self, client, db, editor_setup, auth_headers, password) -> None:
        user = editor_setup["user"]
        resp = client.put("/api/auth/profile", headers=auth_headers(user), json={"email": "Eddie@Example.com"})
        assert resp.status_code == 200
        assert resp.json()["data"]["requires_verification"] is True

        db.refresh(user)
        assert user.email == "eddie@example.com"
        assert user.username == "eddie@example.com"
        assert user.email_verified is False
        assert user.email_verification_token

        login = client.post("/api/auth/login", json={"username": "eddie@example.com", "password": password})
        assert login.status_code == 403
        assert login.json()["requiresVerification"] is True
        old = client.post("/api/auth/login", json={"username": "editor@example.com", "password": password})
        assert old.status_code == 401

        client.get("/api/auth/verify-email", params={"token": user.email_verification_token})
        login = client.post("/api/auth/login", json={"username": "eddie@example.com", "password": password})
        assert login.status_code == 200

    def test_same_email_keeps_verification(self, client, db, editor_setup, auth_headers) -> None:
        resp = client.put(
            "/api/auth/profile",
            headers=auth_headers(editor_setup["user"]),
            json={"email": "editor@example.com"},
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["requires_verification"] is False
        db.refresh(editor_setup["user"])
        assert editor_setup["user"].email_verified is True

    def test_email_taken(self, client, editor_setup, auth_headers) -> None:
        resp = client.put(
            "/api/auth/profile",
            headers=auth_headers(editor_setup["user"]),
            json={"email": editor_setup["owner"].email},
        )
        assert resp.status_code == 409

    def test_empty_update(self, client, editor_setup, auth_headers) -> None:
        resp = client.put("/api/auth/profile", headers=auth_headers(editor_setup["user"]), json={})
        assert resp.status_code == 400
        assert resp.json()["message"] == "No fields to update"

    def test_requires_token(self, client) -> None:
        assert client.put("/api/auth/profile", json={"full_name": "Nobody"}).status_code == 401
