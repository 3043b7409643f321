"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from workdesk.core.security import PASSWORD_TOO_LONG_MESSAGE, password_too_long


# ---- Envelope ----
class Envelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None


def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Success envelope."""
    return {"success": True, "message": message, "data": data}


# ---- Auth ----
def _check_password_bytes(value: str) -> str:
    if password_too_long(value):
        raise ValueError(PASSWORD_TOO_LONG_MESSAGE)
    return value

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1)

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    full_name: str = Field(..., min_length=2, max_length=100)
    workspace_name: str = Field(..., min_length=2, max_length=100)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

class RefreshRequest(BaseModel):
    refresh_token: str

class ResendVerificationRequest(BaseModel):
    email: EmailStr

class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=72)
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None


# ---- Roles ----
class PermissionOut(BaseModel):
    id: int
    module: str
    action: str
    description: Optional[str] = None

    class Config:
        from_attributes = True

class RoleOut(BaseModel):
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    is_system_role: bool
    user_count: int = 0
    permission_count: int = 0
    permissions: Optional[List[PermissionOut]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class RoleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    permission_ids: List[int] = Field(default_factory=list)

class RoleUpdate(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None

class RolePermissionsUpdate(BaseModel):
    permission_ids: List[int] = Field(..., description="Complete set of permission ids for the role")


# ---- Workspaces ----
class MemberUpdate(BaseModel):
    role: Optional[str] = None
    status: Optional[str] = None


# ---- Subscriptions ----
class TrialUpdate(BaseModel):
    trial_ends_at: Optional[datetime] = None

class WorkspaceStatusUpdate(BaseModel):
    status: str


# ---- Audit ----
class AuditLogOut(BaseModel):
    id: int
    actor_id: Optional[int] = None
    actor_email: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    old_value_json: Optional[str] = None
    new_value_json: Optional[str] = None
    request_id: Optional[str] = None
    ip_address: Optional[str] = None
    workspace_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
