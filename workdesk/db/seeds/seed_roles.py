"""Seed the permission catalog and the system roles."""

from typing import Dict, List, Tuple

from sqlalchemy.orm import Session

from workdesk.models.role import Permission, Role, RolePermission

CRUD = ("view", "create", "edit", "delete")

# module -> [(action, description)]
PERMISSION_CATALOG: Dict[str, List[Tuple[str, str]]] = {
    "clients": [(a, f"{a.title()} clients") for a in CRUD],
    "projects": [(a, f"{a.title()} projects") for a in CRUD],
    "quotations": [(a, f"{a.title()} quotations") for a in CRUD],
    "invoices": [(a, f"{a.title()} invoices") for a in CRUD]
    + [("record_payment", "Record payments against invoices")],
    "files": [
        ("view", "View files"),
        ("upload", "Upload files"),
        ("edit", "Edit file metadata"),
        ("delete", "Delete files"),
        ("download", "Download files"),
    ],
    "credentials": [(a, f"{a.title()} credentials") for a in CRUD],
    "conversations": [(a, f"{a.title()} conversations") for a in CRUD],
    "users": [(a, f"{a.title()} users") for a in CRUD],
    "roles": [("view", "View roles and permissions"), ("edit", "Edit roles and permissions")],
    "dashboard": [("view", "View dashboard")],
    "reports": [("view", "View reports")],
    "pm_workspaces": [(a, f"{a.title()} PM workspaces") for a in CRUD],
    "pm_user_stories": [(a, f"{a.title()} user stories") for a in CRUD],
    "pm_tasks": [(a, f"{a.title()} tasks") for a in CRUD],
    "pm_sprints": [(a, f"{a.title()} sprints") for a in CRUD],
    "pm_epics": [(a, f"{a.title()} epics") for a in CRUD],
    "pm_comments": [(a, f"{a.title()} comments") for a in CRUD],
    "pm_time_logs": [(a, f"{a.title()} time logs") for a in CRUD],
    "pm_attachments": [("view", "View attachments"), ("create", "Upload attachments"), ("delete", "Delete attachments")],
    "pm_reports": [("view", "View PM reports")],
    "pm_settings": [("view", "View workspace settings"), ("edit", "Edit workspace settings")],
    "pm_activity": [("view", "View activity feed")],
    "pm_chat": [(a, f"{a.title()} chat messages") for a in CRUD],
}

ALL = "*"
VIEW_ONLY = "view"

# Grants per system role: module -> list of actions, ALL, or VIEW_ONLY.
# "admin" is reserved and grants nothing; platform operators use the
# super-admin flag instead.
SYSTEM_ROLES = [
    {
        "name": "admin",
        "display_name": "Administrator",
        "description": "Reserved role name; grants nothing by itself",
        "grants": {},
    },
    {
        "name": "owner",
        "display_name": "Workspace Owner",
        "description": "Creator of a workspace with every permission inside it",
        "grants": {module: ALL for module in PERMISSION_CATALOG},
    },
    {
        "name": "po",
        "display_name": "Project Owner",
        "description": "Can manage projects, clients, and related resources",
        "grants": {
            "clients": ALL, "projects": ALL, "quotations": ALL, "files": ALL,
            "credentials": ALL, "conversations": ALL, "dashboard": ALL, "reports": ALL,
            "invoices": VIEW_ONLY, "users": VIEW_ONLY,
            "pm_workspaces": ALL, "pm_user_stories": ALL, "pm_tasks": ALL,
            "pm_sprints": ALL, "pm_epics": ALL, "pm_comments": ALL,
            "pm_time_logs": ALL, "pm_attachments": ALL, "pm_reports": ALL,
            "pm_settings": ALL, "pm_activity": ALL, "pm_chat": ALL,
        },
    },
    {
        "name": "manager",
        "display_name": "Manager",
        "description": "Can manage teams, projects, and view reports",
        "grants": {
            "clients": VIEW_ONLY, "projects": ["view", "create", "edit"],
            "quotations": VIEW_ONLY, "invoices": VIEW_ONLY, "files": ["view", "upload", "download"],
            "conversations": ALL, "users": VIEW_ONLY, "dashboard": ALL, "reports": ALL,
            "pm_user_stories": ALL, "pm_tasks": ALL, "pm_sprints": ALL, "pm_epics": ALL,
            "pm_comments": ALL, "pm_time_logs": ALL, "pm_attachments": ALL,
            "pm_reports": ALL, "pm_activity": ALL, "pm_chat": ALL,
        },
    },
    {
        "name": "accountant",
        "display_name": "Accountant",
        "description": "Can manage invoices, payments, and financial data",
        "grants": {
            "clients": VIEW_ONLY, "projects": VIEW_ONLY, "quotations": ALL, "invoices": ALL,
            "files": ["view", "upload", "download"], "dashboard": ALL, "reports": ALL,
        },
    },
    {
        "name": "client",
        "display_name": "Client",
        "description": "Can view their own projects, invoices, and files",
        "grants": {
            "projects": VIEW_ONLY, "invoices": VIEW_ONLY, "quotations": VIEW_ONLY,
            "files": ["view", "download"], "conversations": ["view", "create"],
            "dashboard": ALL,
        },
    },
    {
        "name": "viewer",
        "display_name": "Viewer",
        "description": "Read-only access to view data",
        "grants": {module: VIEW_ONLY for module in PERMISSION_CATALOG if module != "credentials"},
    },
]


def _expand(module: str, actions) -> List[Tuple[str, str]]:
    available = [a for a, _ in PERMISSION_CATALOG[module]]
    if actions == ALL:
        selected = available
    elif actions == VIEW_ONLY:
        selected = ["view"]
    else:
        selected = actions
    return [(module, a) for a in selected if a in available]


def seed_permissions(db: Session) -> Dict[Tuple[str, str], Permission]:
    """Insert missing catalog entries; returns the catalog keyed by (module, action)."""
    existing = {(p.module, p.action): p for p in db.query(Permission).all()}
    for module, actions in PERMISSION_CATALOG.items():
        for action, description in actions:
            if (module, action) not in existing:
                permission = Permission(module=module, action=action, description=description)
                db.add(permission)
                existing[(module, action)] = permission
    db.flush()
    return existing


def seed_roles(db: Session) -> None:
    """Insert the catalog and system roles if they don't already exist.

    Existing roles keep their grants so operator edits survive a re-seed.
    """
    catalog = seed_permissions(db)

    created = 0
    for role_data in SYSTEM_ROLES:
        if db.query(Role).filter(Role.name == role_data["name"]).first():
            continue
        role = Role(
            name=role_data["name"],
            display_name=role_data["display_name"],
            description=role_data["description"],
            is_system_role=True,
        )
        db.add(role)
        db.flush()
        for module, actions in role_data["grants"].items():
            for key in _expand(module, actions):
                db.add(RolePermission(role_id=role.id, permission_id=catalog[key].id))
        created += 1

    db.commit()
    print(f"✅ Seeded {len(catalog)} permissions and {created} new system roles")
