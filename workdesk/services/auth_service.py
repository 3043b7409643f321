"""Auth service: login, registration, verification, refresh, logout, profile."""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from workdesk.core.config import settings
from workdesk.core.exceptions import (
    AuthenticationError, ResourceConflictError, ValidationError, VerificationRequiredError,
)
from workdesk.core.security import (
    REFRESH_TOKEN_TYPE, create_access_token, create_refresh_token, decode_token,
    hash_password, hash_token, verify_credentials, verify_password,
)
from workdesk.models.refresh_token import RefreshToken
from workdesk.models.user import User
from workdesk.models.workspace import (
    MembershipStatus, PlanType, Workspace, WorkspaceMember, WorkspaceStatus,
)
from workdesk.services.entitlement import is_allowed
from workdesk.services.workspace_service import WorkspaceContext, workspace_service

logger = logging.getLogger("workdesk.auth")

OWNER_ROLE = "owner"
INVALID_CREDENTIALS = "Invalid credentials"
VERIFY_EMAIL_MESSAGE = (
    "Please verify your email address before logging in. "
    "Check your inbox for the verification link."
)


def user_out(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "is_super_admin": bool(user.is_super_admin),
        "email_verified": bool(user.email_verified),
        "is_active": bool(user.is_active),
        "last_login_at": user.last_login_at,
        "created_at": user.created_at,
    }


def workspace_out(context: Optional[WorkspaceContext]) -> Optional[Dict[str, Any]]:
    """Workspace summary with the entitlement verdict, or None."""
    if context is None:
        return None
    data = context.to_dict()
    decision = is_allowed(context)
    data["entitlement"] = {"allowed": decision.allowed, "reason": decision.reason}
    return data


class AuthService:
    """Handles authentication and account lifecycle."""

    @staticmethod
    def _issue_tokens(db: Session, user: User, workspace_id: Optional[int]) -> Dict[str, str]:
        access_token = create_access_token(user.id, workspace_id)
        refresh_token_str = create_refresh_token(user.id, workspace_id)

        # Store refresh token hash
        rt = RefreshToken(
            user_id=user.id,
            token_hash=hash_token(refresh_token_str),
            expires_at=decode_token(refresh_token_str, REFRESH_TOKEN_TYPE).expires_at,
        )
        db.add(rt)
        return {"token": access_token, "refresh_token": refresh_token_str}

    @staticmethod
    def authenticate(db: Session, login: str, password: str) -> Dict[str, Any]:
        """Authenticate by username or email and return tokens.

        Raises:
            AuthenticationError: Unknown user, inactive user or wrong password,
                all reported identically.
            VerificationRequiredError: Credentials are valid but the email
                address is unverified (super admins are exempt).
        """
        login = login.strip()
        user = (
            db.query(User)
            .filter(
                or_(User.username == login, User.email == login.lower()),
                User.is_active.is_(True),
            )
            .first()
        )
        if not verify_credentials(user, password):
            logger.info("Failed login attempt")
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not user.is_super_admin and not user.email_verified:
            logger.info("Login blocked pending email verification user=%s", user.id)
            raise VerificationRequiredError(VERIFY_EMAIL_MESSAGE)

        context = workspace_service.resolve(db, user.id)
        tokens = AuthService._issue_tokens(db, user, context.workspace_id if context else None)
        user.last_login_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(user)

        logger.info(
            "User %s logged in workspace=%s",
            user.id, context.workspace_id if context else None,
        )
        return {
            "user": user_out(user),
            "token": tokens["token"],
            "refresh_token": tokens["refresh_token"],
            "token_type": "bearer",
            "workspace": workspace_out(context),
        }

    @staticmethod
    def register(
        db: Session,
        email: str,
        password: str,
        full_name: str,
        workspace_name: str,
    ) -> Dict[str, Any]:
        """Create the user, their workspace and owner membership together."""
        email = email.strip().lower()
        if db.query(User.id).filter(or_(User.email == email, User.username == email)).first():
            raise ResourceConflictError("Email already registered")

        now = datetime.now(timezone.utc)
        verification_token = secrets.token_hex(32)
        slug = workspace_service.generate_unique_slug(db, workspace_name)

        try:
            user = User(
                email=email,
                username=email,
                hashed_password=hash_password(password),
                full_name=full_name.strip(),
                role=OWNER_ROLE,
                email_verified=False,
                email_verification_token=verification_token,
                is_active=True,
            )
            db.add(user)
            db.flush()

            workspace = Workspace(
                name=workspace_name.strip(),
                slug=slug,
                owner_id=user.id,
                plan_type=PlanType.free,
                status=WorkspaceStatus.active,
                trial_ends_at=now + timedelta(days=settings.TRIAL_DAYS),
            )
            db.add(workspace)
            db.flush()

            db.add(WorkspaceMember(
                workspace_id=workspace.id,
                user_id=user.id,
                role=OWNER_ROLE,
                status=MembershipStatus.active,
                joined_at=now,
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise

        # Delivery belongs to the mail collaborator, which reads the stored token.
        logger.info("Registered user %s with workspace %s (%s)", user.id, workspace.id, slug)
        return {
            "user_id": user.id,
            "workspace_id": workspace.id,
            "requires_verification": True,
        }

    @staticmethod
    def verify_email(db: Session, token: str) -> User:
        token = (token or "").strip()
        if not token:
            raise ValidationError("Verification token is required")

        user = db.query(User).filter(User.email_verification_token == token).first()
        if not user:
            raise ValidationError("Invalid or expired verification token")
        if user.email_verified:
            raise ValidationError("Email already verified")

        user.email_verified = True
        user.email_verification_token = None
        db.commit()
        logger.info("Email verified for user %s", user.id)
        return user

    @staticmethod
    def resend_verification(db: Session, email: str) -> None:
        """Make sure an unverified account has a verification token.

        Silent for unknown and already-verified addresses.
        """
        user = db.query(User).filter(User.email == email.strip().lower()).first()
        if not user or user.email_verified:
            return
        if not user.email_verification_token:
            user.email_verification_token = secrets.token_hex(32)
            db.commit()
        logger.info("Verification re-requested for user %s", user.id)

    @staticmethod
    def refresh_access_token(db: Session, refresh_token: str) -> Dict[str, Any]:
        """Issue a new access token against the user's live workspace."""
        claims = decode_token(refresh_token, REFRESH_TOKEN_TYPE)

        stored = db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token),
            RefreshToken.revoked_at.is_(None),
        ).first()
        if not stored:
            raise AuthenticationError("Invalid or expired token")

        user = db.query(User).filter(User.id == claims.user_id).first()
        if not user or not user.is_active:
            raise AuthenticationError("Invalid or expired token")

        context = workspace_service.resolve(db, user.id)
        return {
            "token": create_access_token(user.id, context.workspace_id if context else None),
            "token_type": "bearer",
            "workspace": workspace_out(context),
        }

    @staticmethod
    def logout(db: Session, user_id: int) -> None:
        """Revoke all refresh tokens for a user."""
        db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        ).update({"revoked_at": datetime.now(timezone.utc)}, synchronize_session=False)
        db.commit()

    @staticmethod
    def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
        if current_password == new_password:
            raise ValidationError("New password must be different from current password")
        if not verify_password(current_password, user.hashed_password):
            raise ValidationError("Current password is incorrect")

        user.hashed_password = hash_password(new_password)
        db.commit()
        AuthService.logout(db, user.id)
        logger.info("Password changed for user %s", user.id)

    @staticmethod
    def update_profile(
        db: Session,
        user: User,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Change display name and/or email address.

        A new email address must be verified again before the next login.
        Returns the updated user and whether verification is now pending.
        """
        if full_name is None and email is None:
            raise ValidationError("No fields to update")

        requires_verification = False
        if full_name is not None:
            user.full_name = full_name.strip()

        if email is not None:
            email = email.strip().lower()
            if email != user.email:
                taken = (
                    db.query(User.id)
                    .filter(or_(User.email == email, User.username == email), User.id != user.id)
                    .first()
                )
                if taken:
                    raise ResourceConflictError("Email already in use")
                if user.username == user.email:
                    user.username = email
                user.email = email
                if not user.is_super_admin:
                    user.email_verified = False
                    user.email_verification_token = secrets.token_hex(32)
                    requires_verification = True

        db.commit()
        db.refresh(user)
        logger.info(
            "Profile updated for user %s requires_verification=%s", user.id, requires_verification
        )
        return {"user": user_out(user), "requires_verification": requires_verification}


auth_service = AuthService()
