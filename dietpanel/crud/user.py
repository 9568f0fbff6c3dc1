"""User CRUD"""
import uuid

from sqlmodel import Session, select

from dietpanel.enums import Gender, UserRole, UserStatus
from dietpanel.models import User


def get_by_id(*, session: Session, user_id: uuid.UUID) -> User | None:
    return session.get(User, user_id)


def get_by_email(*, session: Session, email: str) -> User | None:
    """Emails are stored lowercase; lookup is case-insensitive."""
    statement = select(User).where(User.email == email.strip().lower())
    return session.exec(statement).first()


def create(
    *,
    session: Session,
    email: str,
    password_hash: str,
    role: UserRole,
    first_name: str | None = None,
    last_name: str | None = None,
    age: int | None = None,
    gender: Gender | None = None,
    status: UserStatus = UserStatus.active,
    commit: bool = True,
) -> User:
    """Create a user. With ``commit=False`` the row is only flushed so the caller can add more work to the transaction."""
    user = User(
        email=email.strip().lower(),
        password_hash=password_hash,
        role=role,
        status=status,
        first_name=first_name,
        last_name=last_name,
        age=age,
        gender=gender,
    )
    session.add(user)
    if commit:
        session.commit()
        session.refresh(user)
    else:
        session.flush()
    return user
