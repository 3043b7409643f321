"""Entitlement gate: can this workspace be served right now?"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

NO_WORKSPACE = "no_workspace"
TRIAL_EXPIRED = "trial_expired"


@dataclass(frozen=True)
class EntitlementDecision:
    allowed: bool
    reason: Optional[str] = None
    trial_ends_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "trial_ends_at": self.trial_ends_at.isoformat() if self.trial_ends_at else None,
        }


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_allowed(workspace: Optional[Any], now: Optional[datetime] = None) -> EntitlementDecision:
    """Decide whether ``workspace`` may be served.

    ``workspace`` is anything with ``subscription_id`` and ``trial_ends_at``
    attributes (a ``WorkspaceContext`` or a ``Workspace`` row). Rules are
    applied in order and the first match wins:

    1. no workspace -> denied (``no_workspace``)
    2. a subscription is recorded -> allowed, whatever the trial says
    3. no trial end recorded -> allowed (workspaces predating trials)
    4. trial ends strictly after ``now`` -> allowed
    5. otherwise -> denied (``trial_expired``) with the expiry attached
    """
    if workspace is None:
        return EntitlementDecision(allowed=False, reason=NO_WORKSPACE)
    if workspace.subscription_id:
        return EntitlementDecision(allowed=True)
    if workspace.trial_ends_at is None:
        return EntitlementDecision(allowed=True)

    trial_ends_at = as_utc(workspace.trial_ends_at)
    current = as_utc(now) if now is not None else datetime.now(timezone.utc)
    if trial_ends_at > current:
        return EntitlementDecision(allowed=True, trial_ends_at=trial_ends_at)
    return EntitlementDecision(allowed=False, reason=TRIAL_EXPIRED, trial_ends_at=trial_ends_at)
