"""Login attempt CRUD (brute-force lockout)"""
from datetime import datetime

from sqlmodel import Session, delete, select

from dietpanel.models import LoginAttempt


def record(
    *,
    session: Session,
    email: str,
    success: bool,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    session.add(
        LoginAttempt(
            email=email.strip().lower(),
            success=success,
            ip_address=ip_address,
            user_agent=user_agent[:512] if user_agent else None,
        )
    )
    session.commit()


def failed_since(*, session: Session, email: str, since: datetime) -> list[LoginAttempt]:
    """Failed attempts for an email at or after ``since``, oldest first."""
    statement = (
        select(LoginAttempt)
        .where(
            LoginAttempt.email == email.strip().lower(),
            LoginAttempt.success == False,  # noqa: E712
            LoginAttempt.attempted_at >= since,
        )
        .order_by(LoginAttempt.attempted_at.asc())
    )
    return list(session.exec(statement).all())


def purge_before(*, session: Session, cutoff: datetime) -> int:
    result = session.exec(delete(LoginAttempt).where(LoginAttempt.attempted_at < cutoff))
    session.commit()
    return result.rowcount or 0
