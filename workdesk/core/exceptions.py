"""Exception classes for the authorization core.

Each exception knows the HTTP status it maps to and how to render itself as
the ``{success, message, ...}`` envelope the client expects.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class WorkdeskError(Exception):
    """Base exception for Workdesk."""

    status_code = 500

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)

    def to_envelope(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class AuthenticationError(WorkdeskError):
    """Raised when credentials or the session token cannot be trusted."""

    status_code = 401

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class VerificationRequiredError(WorkdeskError):
    """Valid credentials but the email address has not been verified."""

    status_code = 403

    def to_envelope(self) -> Dict[str, Any]:
        envelope = super().to_envelope()
        envelope["requiresVerification"] = True
        return envelope


class EntitlementError(WorkdeskError):
    """The actor is authenticated but their workspace cannot be served."""

    status_code = 403

    def __init__(
        self,
        message: str,
        reason: str,
        trial_ends_at: Optional[datetime] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.trial_ends_at = trial_ends_at

    def to_envelope(self) -> Dict[str, Any]:
        envelope = super().to_envelope()
        envelope["code"] = self.reason.upper()
        envelope["trialExpired"] = self.reason == "trial_expired"
        if self.trial_ends_at is not None:
            envelope["trial_ends_at"] = self.trial_ends_at.isoformat()
        return envelope


class AuthorizationError(WorkdeskError):
    """Raised when user lacks permission."""

    status_code = 403

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class RegistryInvariantError(WorkdeskError):
    """A role registry mutation would break a protected invariant."""

    status_code = 400


class ValidationError(WorkdeskError):
    """Raised when input validation fails."""

    status_code = 400

    def __init__(self, message: str = "Validation error", errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors

    def to_envelope(self) -> Dict[str, Any]:
        envelope = super().to_envelope()
        if self.errors:
            envelope["errors"] = self.errors
        return envelope


class ResourceNotFoundError(WorkdeskError):
    """Raised when a requested resource is not found."""

    status_code = 404


class ResourceConflictError(WorkdeskError):
    """Raised when a resource already exists."""

    status_code = 409
