"""Seed the super-admin user from env vars."""

from sqlalchemy.orm import Session

from workdesk.core.config import settings
from workdesk.core.security import hash_password
from workdesk.models.user import User


def seed_super_admin(db: Session) -> None:
    """Create the platform operator account if not already present."""
    existing = db.query(User).filter(User.email == settings.SUPER_ADMIN_EMAIL).first()
    if existing:
        print(f"ℹ️  Super admin '{settings.SUPER_ADMIN_EMAIL}' already exists, skipping.")
        return

    admin = User(
        username="superadmin",
        email=settings.SUPER_ADMIN_EMAIL,
        hashed_password=hash_password(settings.SUPER_ADMIN_PASSWORD),
        full_name="Super Admin",
        role="admin",
        is_super_admin=True,
        email_verified=True,
        is_active=True,
    )
    db.add(admin)
    db.commit()
    print(f"✅ Created super admin: {settings.SUPER_ADMIN_EMAIL}")
