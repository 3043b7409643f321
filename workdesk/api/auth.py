"""Auth API router: login, register, verification, refresh, logout, me, profile."""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from workdesk.core.auth import AuthContext, get_current_context
from workdesk.core.exceptions import ValidationError
from workdesk.db.session import get_db
from workdesk.schemas.schemas import (
    ChangePasswordRequest, Envelope, LoginRequest, ProfileUpdate, RefreshRequest,
    RegisterRequest, ResendVerificationRequest, ok,
)
from workdesk.services.audit_service import audit_service
from workdesk.services.auth_service import auth_service, user_out, workspace_out

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Envelope)
def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Authenticate and return a session token with the current workspace."""
    result = auth_service.authenticate(db, body.username, body.password)
    audit_service.log(
        db,
        "user.login",
        "user",
        resource_id=result["user"]["id"],
        actor_id=result["user"]["id"],
        actor_email=result["user"]["email"],
        workspace_id=result["workspace"]["id"] if result["workspace"] else None,
        request=request,
    )
    return ok(result, "Login successful")


@router.post("/register", response_model=Envelope, status_code=201)
def register(body: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """Register a user together with their own workspace."""
    result = auth_service.register(
        db, body.email, body.password, body.full_name, body.workspace_name
    )
    audit_service.log(
        db,
        "user.registered",
        "user",
        resource_id=result["user_id"],
        actor_id=result["user_id"],
        actor_email=body.email,
        workspace_id=result["workspace_id"],
        request=request,
    )
    return ok(result, "Registration successful! Please check your email to verify your account.")


@router.get("/verify-email", response_model=Envelope)
def verify_email(token: str = Query(""), db: Session = Depends(get_db)):
    auth_service.verify_email(db, token)
    return ok(message="Email verified successfully! You can now log in.")


@router.post("/resend-verification", response_model=Envelope)
def resend_verification(body: ResendVerificationRequest, db: Session = Depends(get_db)):
    auth_service.resend_verification(db, body.email)
    return ok(message="If the email exists and is not verified, a verification email has been sent.")


@router.post("/refresh", response_model=Envelope)
def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    """Refresh access token."""
    return ok(auth_service.refresh_access_token(db, body.refresh_token))


@router.post("/logout", response_model=Envelope)
def logout(
    db: Session = Depends(get_db),
    context: AuthContext = Depends(get_current_context),
):
    """Revoke all refresh tokens."""
    auth_service.logout(db, context.user.id)
    return ok(message="Logout successful")


@router.get("/me", response_model=Envelope)
def get_me(context: AuthContext = Depends(get_current_context)):
    """Current user, workspace and permissions.

    Reachable with an expired trial so the client can explain why
    workspace features are unavailable.
    """
    data = user_out(context.user)
    data["workspace"] = workspace_out(context.workspace)
    data["entitlement"] = context.entitlement.to_dict()
    data.update(context.permissions_payload())
    return ok(data)


@router.get("/permissions", response_model=Envelope)
def get_permissions(context: AuthContext = Depends(get_current_context)):
    """Permission state for client-side UI gating (advisory only)."""
    return ok(context.permissions_payload())


@router.put("/change-password", response_model=Envelope)
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(get_current_context),
):
    if body.new_password != body.confirm_password:
        raise ValidationError("Passwords do not match")
    auth_service.change_password(db, context.user, body.current_password, body.new_password)
    audit_service.record(db, request, context, "user.password_changed", "user", resource_id=context.user.id)
    return ok(message="Password changed successfully")


@router.put("/profile", response_model=Envelope)
def update_profile(
    body: ProfileUpdate,
    request: Request,
    db: Session = Depends(get_db),
    context: AuthContext = Depends(get_current_context),
):
    """Update full name and/or email; a new email must be verified again."""
    old_value = {"full_name": context.user.full_name, "email": context.user.email}
    result = auth_service.update_profile(db, context.user, body.full_name, body.email)
    audit_service.record(
        db, request, context, "user.profile_updated", "user",
        resource_id=context.user.id,
        old_value=old_value,
        new_value=body.model_dump(exclude_none=True),
    )
    message = "Profile updated successfully"
    if result["requires_verification"]:
        message += ". Please verify your new email address."
    return ok(result, message)
