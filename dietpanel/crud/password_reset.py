"""Password reset token CRUD"""
import uuid
from datetime import datetime

from sqlalchemy import update
from sqlmodel import Session, delete, select

from dietpanel.core import security
from dietpanel.models import PasswordResetToken, utc_now


def create(
    *, session: Session, user_id: uuid.UUID, expires_at: datetime
) -> tuple[str, PasswordResetToken]:
    """
    Issue a new token, dropping the user's earlier ones.

    Returns:
        (raw token for the reset link, stored row holding only the hash)
    """
    session.exec(delete(PasswordResetToken).where(PasswordResetToken.user_id == user_id))
    token = security.generate_invitation_token()
    row = PasswordResetToken(
        user_id=user_id,
        token_hash=security.hash_token(token),
        expires_at=expires_at,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return token, row


def get_usable(
    *, session: Session, token: str, now: datetime | None = None
) -> PasswordResetToken | None:
    """The token row if it exists, is unused and has not expired."""
    now = now or utc_now()
    statement = select(PasswordResetToken).where(
        PasswordResetToken.token_hash == security.hash_token(token),
        PasswordResetToken.used_at.is_(None),
        PasswordResetToken.expires_at > now,
    )
    return session.exec(statement).first()


def mark_used(*, session: Session, token_id: uuid.UUID, now: datetime | None = None) -> bool:
    """
    Consume a token with a single conditional update.

    Does not commit; the caller owns the transaction.

    Returns:
        True if this call consumed it, False if another request already did
    """
    statement = (
        update(PasswordResetToken)
        .where(PasswordResetToken.id == token_id, PasswordResetToken.used_at.is_(None))
        .values(used_at=now or utc_now())
    )
    result = session.exec(statement)  # type: ignore[call-overload]
    return (result.rowcount or 0) == 1
