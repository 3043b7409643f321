"""Workdesk CLI tool (workdeskctl)."""

import typer

app = typer.Typer(name="workdeskctl", help="Workdesk authorization core CLI")
db_app = typer.Typer(help="Database management commands")
token_app = typer.Typer(help="Session token commands")
app.add_typer(db_app, name="db")
app.add_typer(token_app, name="token")


def _seed_all() -> None:
    from workdesk.db.session import SessionLocal
    from workdesk.db.seeds.seed_roles import seed_roles
    from workdesk.db.seeds.seed_super_admin import seed_super_admin

    db = SessionLocal()
    try:
        seed_roles(db)
        seed_super_admin(db)
    finally:
        db.close()


@db_app.command("init")
def db_init():
    """Create all tables that don't exist yet."""
    import workdesk.models  # noqa: F401  registers the mappers
    from workdesk.db.base import Base
    from workdesk.db.session import engine

    Base.metadata.create_all(bind=engine)
    typer.echo("✅ Tables created (or already exist)")


@db_app.command("seed")
def db_seed():
    """Seed the permission catalog, system roles and the super admin."""
    _seed_all()
    typer.echo("✅ All seeds applied")


@db_app.command("reset")
def db_reset(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Drop and recreate every table, then re-seed (DANGER)."""
    if not yes and not typer.confirm("⚠️  This will DROP all Workdesk tables. Continue?"):
        raise typer.Abort()
    import workdesk.models  # noqa: F401
    from workdesk.db.base import Base
    from workdesk.db.session import engine

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    _seed_all()
    typer.echo("✅ Database reset")


@token_app.command("issue")
def token_issue(
    user_id: int = typer.Argument(..., help="User ID to mint an access token for"),
    minutes: int = typer.Option(None, help="Lifetime in minutes (default from settings)"),
):
    """Mint an access token for an active user, binding their current workspace."""
    from datetime import timedelta

    from workdesk.core.security import create_access_token
    from workdesk.db.session import SessionLocal
    from workdesk.models.user import User
    from workdesk.services.workspace_service import workspace_service

    db = SessionLocal()
    try:
        user = db.query(User).filter(User.id == user_id, User.is_active == True).first()
        if user is None:
            typer.echo(f"No active user with id {user_id}", err=True)
            raise typer.Exit(code=1)
        workspace = workspace_service.resolve(db, user.id)
        token = create_access_token(
            user.id,
            workspace.workspace_id if workspace else None,
            expires_delta=timedelta(minutes=minutes) if minutes else None,
        )
    finally:
        db.close()
    typer.echo(token)


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(True, help="Auto-reload"),
):
    """Start the FastAPI development server."""
    import uvicorn
    uvicorn.run("workdesk.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
