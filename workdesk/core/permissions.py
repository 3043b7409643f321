"""Permission evaluation.

The same functions back server-side enforcement (``RequirePermission``) and
the advisory payload sent to the client for UI gating, so both always agree.
Super admin is a user attribute passed explicitly; no role name is ever
compared against ``"admin"`` here.
"""

from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple


class Permission(NamedTuple):
    """A (module, action) capability grant, e.g. ("projects", "delete")."""

    module: str
    action: str

    def __str__(self) -> str:
        return f"{self.module}.{self.action}"


PermissionPair = Tuple[str, str]


def has_permission(
    permissions: Iterable[Permission],
    module: str,
    action: str,
    is_super_admin: bool = False,
) -> bool:
    if is_super_admin:
        return True
    return Permission(module, action) in set(permissions)


def has_any_permission(
    permissions: Iterable[Permission],
    pairs: Iterable[PermissionPair],
    is_super_admin: bool = False,
) -> bool:
    """True if at least one (module, action) pair is granted."""
    if is_super_admin:
        return True
    granted = set(permissions)
    return any(Permission(module, action) in granted for module, action in pairs)


def has_all_permissions(
    permissions: Iterable[Permission],
    pairs: Iterable[PermissionPair],
    is_super_admin: bool = False,
) -> bool:
    """True only if every (module, action) pair is granted."""
    if is_super_admin:
        return True
    granted = set(permissions)
    return all(Permission(module, action) in granted for module, action in pairs)


def can_view_module(
    permissions: Iterable[Permission],
    module: str,
    is_super_admin: bool = False,
) -> bool:
    """A module is visible when any action on it is granted."""
    if is_super_admin:
        return True
    return any(p.module == module for p in permissions)


def group_by_module(permissions: Iterable[Permission]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for perm in sorted(set(permissions)):
        grouped.setdefault(perm.module, []).append(perm.action)
    return grouped


# Navigation entries and the module that must be visible for each.
# None means the entry is always shown.
NAVIGATION_MODULES: Dict[str, Optional[str]] = {
    "dashboard": "dashboard",
    "clients": "clients",
    "projects": "projects",
    "quotations": "quotations",
    "invoices": "invoices",
    "files": "files",
    "credentials": "credentials",
    "conversations": "conversations",
    "users": "users",
    "roles": "roles",
    "reports": "reports",
    "guide": None,
    "settings": None,
}


def navigation_visibility(
    permissions: Iterable[Permission],
    is_super_admin: bool = False,
) -> Dict[str, bool]:
    """Which navigation entries the client should render."""
    granted = frozenset(permissions)
    return {
        entry: module is None or can_view_module(granted, module, is_super_admin)
        for entry, module in NAVIGATION_MODULES.items()
    }
