"""Patient CRUD (users with the patient role, as seen by a dietitian)"""
import logging
import uuid
from datetime import datetime

from sqlalchemy import exists, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from dietpanel.enums import UserRole, UserStatus
from dietpanel.models import User, WeightEntry

logger = logging.getLogger(__name__)


def get(*, session: Session, patient_id: uuid.UUID) -> User | None:
    """The user if it exists and has the patient role."""
    statement = select(User).where(User.id == patient_id, User.role == UserRole.patient)
    return session.exec(statement).first()


def count(*, session: Session, status: UserStatus | None) -> int:
    statement = select(func.count()).select_from(User).where(User.role == UserRole.patient)
    if status is not None:
        statement = statement.where(User.status == status)
    return session.exec(statement).one()


def list_with_activity(
    *,
    session: Session,
    status: UserStatus | None,
    week_start: datetime,
    week_end: datetime,
    limit: int,
    offset: int,
) -> list[tuple[User, datetime | None, bool]]:
    """
    A page of patients with their weighing activity.

    Each row is (patient, last measurement date or None, whether an entry
    falls in ``[week_start, week_end)``). Patients who weighed most recently
    come first, patients without entries last, newest accounts first within
    ties.
    """
    last_entry = (
        select(func.max(WeightEntry.measurement_date))
        .where(WeightEntry.user_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )
    weighed_this_week = exists().where(
        WeightEntry.user_id == User.id,
        WeightEntry.measurement_date >= week_start,
        WeightEntry.measurement_date < week_end,
    )
    statement = select(User, last_entry, weighed_this_week).where(User.role == UserRole.patient)
    if status is not None:
        statement = statement.where(User.status == status)
    statement = (
        statement.order_by(last_entry.desc().nulls_last(), User.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    try:
        return [(user, last, bool(met)) for user, last, met in session.exec(statement).all()]
    except SQLAlchemyError:
        logger.exception("Failed to list patients")
        raise
