"""Login session CRUD"""
import uuid
from datetime import datetime, timedelta

from sqlmodel import Session, delete

from dietpanel.core import security
from dietpanel.models import AuthSession, User, utc_now


def create(*, session: Session, user_id: uuid.UUID, ttl: timedelta) -> tuple[str, AuthSession]:
    """
    Open a session for a user.

    Returns:
        (raw cookie token, stored session row)
    """
    token = security.generate_session_token()
    row = AuthSession(
        id=security.hash_session_token(token),
        user_id=user_id,
        expires_at=utc_now() + ttl,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return token, row


def get_valid(
    *, session: Session, token: str, now: datetime | None = None
) -> tuple[AuthSession, User] | None:
    """Resolve a cookie token to (session, user); expired sessions are removed and yield None."""
    now = now or utc_now()
    row = session.get(AuthSession, security.hash_session_token(token))
    if row is None:
        return None
    if row.expires_at <= now:
        session.delete(row)
        session.commit()
        return None
    user = session.get(User, row.user_id)
    if user is None:
        return None
    return row, user


def invalidate(*, session: Session, session_id: str) -> None:
    session.exec(delete(AuthSession).where(AuthSession.id == session_id))
    session.commit()


def invalidate_all_for_user(*, session: Session, user_id: uuid.UUID, commit: bool = True) -> int:
    """Log a user out everywhere. With ``commit=False`` the delete joins the caller's transaction."""
    result = session.exec(delete(AuthSession).where(AuthSession.user_id == user_id))
    if commit:
        session.commit()
    return result.rowcount or 0


def purge_expired(*, session: Session, now: datetime | None = None) -> int:
    now = now or utc_now()
    result = session.exec(delete(AuthSession).where(AuthSession.expires_at <= now))
    session.commit()
    return result.rowcount or 0
