"""
PZK module access CRUD.

Active predicate, used by every query here:
    revoked_at IS NULL AND start_at <= now < expires_at
"""
import logging
import uuid
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from dietpanel.models import PzkModuleAccess

logger = logging.getLogger(__name__)


def _active_at(now: datetime):
    return (
        PzkModuleAccess.revoked_at.is_(None),
        PzkModuleAccess.start_at <= now,
        PzkModuleAccess.expires_at > now,
    )


def list_active_access_by_user_id(
    *, session: Session, user_id: uuid.UUID, now: datetime
) -> list[PzkModuleAccess]:
    """
    All active grants of a user, ordered by module ascending.

    Several grants for the same module are returned as separate rows.
    """
    statement = (
        select(PzkModuleAccess)
        .where(PzkModuleAccess.user_id == user_id, *_active_at(now))
        .order_by(PzkModuleAccess.module.asc(), PzkModuleAccess.start_at.asc())
    )
    try:
        return list(session.exec(statement).all())
    except SQLAlchemyError:
        logger.exception("Failed to list active access for user %s", user_id)
        raise


def has_active_access_to_module(
    *, session: Session, user_id: uuid.UUID, module: int, now: datetime
) -> bool:
    statement = (
        select(PzkModuleAccess.id)
        .where(
            PzkModuleAccess.user_id == user_id,
            PzkModuleAccess.module == module,
            *_active_at(now),
        )
        .limit(1)
    )
    try:
        return session.exec(statement).first() is not None
    except SQLAlchemyError:
        logger.exception("Failed to check access for user %s module %s", user_id, module)
        raise


def has_any_active_access(*, session: Session, user_id: uuid.UUID, now: datetime) -> bool:
    statement = (
        select(PzkModuleAccess.id)
        .where(PzkModuleAccess.user_id == user_id, *_active_at(now))
        .limit(1)
    )
    return session.exec(statement).first() is not None


def grant(
    *,
    session: Session,
    user_id: uuid.UUID,
    module: int,
    start_at: datetime,
    expires_at: datetime,
    commit: bool = True,
) -> PzkModuleAccess:
    row = PzkModuleAccess(
        user_id=user_id, module=module, start_at=start_at, expires_at=expires_at
    )
    session.add(row)
    if commit:
        session.commit()
        session.refresh(row)
    return row
