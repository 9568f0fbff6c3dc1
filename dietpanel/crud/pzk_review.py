"""
PZK review CRUD.

Listing is keyset-paginated on (timestamp, id) descending, where timestamp is
created_at or updated_at depending on the sort.
"""
import uuid
from datetime import datetime

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from dietpanel.enums import ReviewSort
from dietpanel.models import PzkReview, User


def list_page(
    *,
    session: Session,
    sort: ReviewSort,
    cursor: tuple[datetime, uuid.UUID] | None,
    limit: int,
) -> list[tuple[PzkReview, str | None]]:
    """
    One page of reviews with the author's first name.

    Args:
        sort: which timestamp orders the page
        cursor: (timestamp, id) of the last row of the previous page
        limit: rows to fetch; callers pass page size + 1
    """
    ts_col = PzkReview.updated_at if sort == ReviewSort.updatedAtDesc else PzkReview.created_at
    statement = select(PzkReview, User.first_name).join(User, User.id == PzkReview.user_id)
    if cursor is not None:
        ts, last_id = cursor
        statement = statement.where(
            or_(ts_col < ts, and_(ts_col == ts, PzkReview.id < last_id))
        )
    statement = statement.order_by(ts_col.desc(), PzkReview.id.desc()).limit(limit)
    return list(session.exec(statement).all())


def get_by_user(*, session: Session, user_id: uuid.UUID) -> PzkReview | None:
    return session.exec(select(PzkReview).where(PzkReview.user_id == user_id)).first()


def upsert(
    *, session: Session, user_id: uuid.UUID, rating: int, content: str, now: datetime
) -> PzkReview:
    review = get_by_user(session=session, user_id=user_id)
    if review is None:
        review = PzkReview(
            user_id=user_id, rating=rating, content=content, created_at=now, updated_at=now
        )
        session.add(review)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            review = get_by_user(session=session, user_id=user_id)
            if review is None:
                raise
        else:
            session.refresh(review)
            return review

    review.rating = rating
    review.content = content
    review.updated_at = now
    session.add(review)
    session.commit()
    session.refresh(review)
    return review


def remove(*, session: Session, review: PzkReview) -> None:
    session.delete(review)
    session.commit()
