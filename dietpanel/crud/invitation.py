"""Invitation CRUD"""
import uuid
from datetime import datetime

from sqlalchemy import update
from sqlmodel import Session, select

from dietpanel.core import security
from dietpanel.models import Invitation, utc_now


def create(
    *, session: Session, email: str | None, created_by: uuid.UUID, expires_at: datetime
) -> tuple[str, Invitation]:
    """
    Create an invitation.

    Returns:
        (raw token for the invitation link, stored row holding only the hash)
    """
    token = security.generate_invitation_token()
    invitation = Invitation(
        email=email.strip().lower() if email else None,
        token_hash=security.hash_token(token),
        created_by=created_by,
        expires_at=expires_at,
    )
    session.add(invitation)
    session.commit()
    session.refresh(invitation)
    return token, invitation


def get_by_token(*, session: Session, token: str) -> Invitation | None:
    statement = select(Invitation).where(Invitation.token_hash == security.hash_token(token))
    return session.exec(statement).first()


def mark_used(*, session: Session, invitation_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    """
    Consume an invitation with a single conditional update.

    Does not commit; the caller owns the transaction.

    Returns:
        True if this call consumed it, False if it was already used
    """
    statement = (
        update(Invitation)
        .where(Invitation.id == invitation_id, Invitation.used_at.is_(None))
        .values(used_at=utc_now(), used_by=user_id)
    )
    result = session.exec(statement)  # type: ignore[call-overload]
    return (result.rowcount or 0) == 1


def get_by_id(*, session: Session, invitation_id: uuid.UUID) -> Invitation | None:
    return session.get(Invitation, invitation_id)


def revoke(*, session: Session, invitation_id: uuid.UUID) -> bool:
    """
    Close an unused invitation so its token stops working.

    Sets ``used_at`` without ``used_by``; does not commit.
    """
    statement = (
        update(Invitation)
        .where(Invitation.id == invitation_id, Invitation.used_at.is_(None))
        .values(used_at=utc_now())
    )
    result = session.exec(statement)  # type: ignore[call-overload]
    return (result.rowcount or 0) == 1
