"""Weight entry CRUD"""
import logging
import uuid
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from dietpanel.models import WeightEntry

logger = logging.getLogger(__name__)


def get_by_id(*, session: Session, entry_id: uuid.UUID) -> WeightEntry | None:
    return session.get(WeightEntry, entry_id)


def get_by_id_for_user(
    *, session: Session, entry_id: uuid.UUID, user_id: uuid.UUID
) -> WeightEntry | None:
    """Lookup scoped to the owner, so another user's id never resolves."""
    statement = select(WeightEntry).where(
        WeightEntry.id == entry_id, WeightEntry.user_id == user_id
    )
    return session.exec(statement).first()


def exists_between(
    *, session: Session, user_id: uuid.UUID, start: datetime, end: datetime
) -> bool:
    """True if the user has an entry with ``start <= measurement_date < end``."""
    statement = select(WeightEntry.id).where(
        WeightEntry.user_id == user_id,
        WeightEntry.measurement_date >= start,
        WeightEntry.measurement_date < end,
    )
    return session.exec(statement).first() is not None


def get_previous(
    *, session: Session, user_id: uuid.UUID, before: datetime, exclude_id: uuid.UUID | None = None
) -> WeightEntry | None:
    """Latest entry measured strictly before ``before``."""
    statement = select(WeightEntry).where(
        WeightEntry.user_id == user_id, WeightEntry.measurement_date < before
    )
    if exclude_id is not None:
        statement = statement.where(WeightEntry.id != exclude_id)
    statement = statement.order_by(WeightEntry.measurement_date.desc()).limit(1)
    return session.exec(statement).first()


def list_for_user(
    *,
    session: Session,
    user_id: uuid.UUID,
    start: datetime | None,
    end: datetime | None,
    before: datetime | None,
    limit: int,
) -> list[WeightEntry]:
    """
    Newest-first page of a user's entries.

    Args:
        start / end: inclusive measurement date bounds
        before: cursor, only entries measured strictly before it
        limit: rows to fetch (callers pass page size + 1 to detect more)
    """
    statement = select(WeightEntry).where(WeightEntry.user_id == user_id)
    if start is not None:
        statement = statement.where(WeightEntry.measurement_date >= start)
    if end is not None:
        statement = statement.where(WeightEntry.measurement_date <= end)
    if before is not None:
        statement = statement.where(WeightEntry.measurement_date < before)
    statement = statement.order_by(WeightEntry.measurement_date.desc()).limit(limit)
    try:
        return list(session.exec(statement).all())
    except SQLAlchemyError:
        logger.exception("Failed to list weight entries for user %s", user_id)
        raise


def list_between(
    *, session: Session, user_id: uuid.UUID, start: datetime, end: datetime
) -> list[WeightEntry]:
    """Entries with ``start <= measurement_date < end``, oldest first."""
    statement = (
        select(WeightEntry)
        .where(
            WeightEntry.user_id == user_id,
            WeightEntry.measurement_date >= start,
            WeightEntry.measurement_date < end,
        )
        .order_by(WeightEntry.measurement_date.asc())
    )
    return list(session.exec(statement).all())


def summary(*, session: Session, user_id: uuid.UUID) -> tuple[int, datetime | None]:
    """(number of entries, latest measurement date) for a user."""
    statement = select(func.count(WeightEntry.id), func.max(WeightEntry.measurement_date)).where(
        WeightEntry.user_id == user_id
    )
    total, last = session.exec(statement).one()
    return total, last


def measurement_dates_since(
    *, session: Session, user_id: uuid.UUID, since: datetime
) -> list[datetime]:
    statement = select(WeightEntry.measurement_date).where(
        WeightEntry.user_id == user_id, WeightEntry.measurement_date >= since
    )
    return list(session.exec(statement).all())


def save(*, session: Session, entry: WeightEntry) -> WeightEntry:
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


def delete(*, session: Session, entry: WeightEntry) -> None:
    session.delete(entry)
    session.commit()
