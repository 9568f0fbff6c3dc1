"""
Database engine.

Tables are managed by Alembic migrations; do not create them here.
Import ``dietpanel.models`` before using the engine so every SQLModel table
is registered on the metadata.
"""
from sqlmodel import Session, create_engine, select

from dietpanel.core import security
from dietpanel.core.config import settings
from dietpanel.enums import UserRole, UserStatus
from dietpanel.models import User

engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI), pool_pre_ping=True)


def init_db(session: Session) -> None:
    """
    Seed the first dietitian account.

    Only runs when FIRST_DIETITIAN_EMAIL and FIRST_DIETITIAN_PASSWORD are set
    and no user with that email exists yet.
    """
    email = settings.FIRST_DIETITIAN_EMAIL
    password = settings.FIRST_DIETITIAN_PASSWORD
    if not email or not password:
        return

    email = email.strip().lower()
    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        return

    session.add(
        User(
            email=email,
            password_hash=security.get_password_hash(password),
            role=UserRole.dietitian,
            status=UserStatus.active,
        )
    )
    session.commit()
