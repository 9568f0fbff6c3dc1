"""
PZK reviews.

The list is global (every user's review) and keyset-paginated on
(timestamp, id) descending. Reading or writing requires at least one active
module access; the public list needs no session and hides author names.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlmodel import Session

from dietpanel.crud import pzk_access, pzk_review
from dietpanel.enums import ReviewSort
from dietpanel.models import PzkReview, utc_now
from dietpanel.services.result import Err, ErrorKind, Ok, Result
from dietpanel.utils.cursor import decode_cursor, encode_cursor

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50
MAX_REVIEW_LENGTH = 5000


@dataclass(frozen=True)
class ReviewPage:
    items: list[dict]
    next_cursor: str | None


def _review_dto(review: PzkReview, first_name: str | None) -> dict:
    return {
        "id": str(review.id),
        "author": {"firstName": first_name},
        "rating": review.rating,
        "content": review.content,
        "createdAt": review.created_at.isoformat(),
        "updatedAt": review.updated_at.isoformat(),
    }


def _my_review_dto(review: PzkReview) -> dict:
    return {
        "id": str(review.id),
        "rating": review.rating,
        "content": review.content,
        "createdAt": review.created_at.isoformat(),
        "updatedAt": review.updated_at.isoformat(),
    }


def _no_active_access() -> Err:
    return Err(ErrorKind.forbidden, "Active PZK access required", reason="no_active_access")


def _has_any_access(session: Session, user_id: uuid.UUID, now: datetime) -> bool:
    return pzk_access.has_any_active_access(session=session, user_id=user_id, now=now)


def _page(
    *, session: Session, sort: ReviewSort, cursor: str | None, limit: int, anonymize: bool
) -> ReviewPage:
    rows = pzk_review.list_page(
        session=session, sort=sort, cursor=decode_cursor(cursor), limit=limit + 1
    )
    has_more = len(rows) > limit
    rows = rows[:limit]

    next_cursor = None
    if has_more and rows:
        last, _ = rows[-1]
        ts = last.updated_at if sort == ReviewSort.updatedAtDesc else last.created_at
        next_cursor = encode_cursor(ts, last.id)

    items = [_review_dto(review, None if anonymize else first_name) for review, first_name in rows]
    return ReviewPage(items=items, next_cursor=next_cursor)


def list_reviews(
    *,
    session: Session,
    user_id: uuid.UUID,
    sort: ReviewSort = ReviewSort.createdAtDesc,
    cursor: str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
    now: datetime | None = None,
) -> Result[ReviewPage]:
    """
    One page of reviews.

    An undecodable cursor restarts from the first page.
    """
    if not _has_any_access(session, user_id, now or utc_now()):
        return _no_active_access()
    return Ok(_page(session=session, sort=sort, cursor=cursor, limit=limit, anonymize=False))


def list_public_reviews(
    *,
    session: Session,
    sort: ReviewSort = ReviewSort.createdAtDesc,
    cursor: str | None = None,
    limit: int = DEFAULT_PAGE_SIZE,
) -> ReviewPage:
    return _page(session=session, sort=sort, cursor=cursor, limit=limit, anonymize=True)


def get_my_review(
    *, session: Session, user_id: uuid.UUID, now: datetime | None = None
) -> Result[dict | None]:
    if not _has_any_access(session, user_id, now or utc_now()):
        return _no_active_access()
    review = pzk_review.get_by_user(session=session, user_id=user_id)
    return Ok(_my_review_dto(review) if review else None)


def upsert_my_review(
    *,
    session: Session,
    user_id: uuid.UUID,
    rating: int,
    content: str,
    now: datetime | None = None,
) -> Result[dict]:
    now = now or utc_now()
    content = content.strip()
    if not 1 <= rating <= 6:
        return Err(ErrorKind.validation, "Rating must be between 1 and 6", details={"field": "rating"})
    if not content or len(content) > MAX_REVIEW_LENGTH:
        return Err(
            ErrorKind.validation,
            f"Review must be between 1 and {MAX_REVIEW_LENGTH} characters",
            details={"field": "content"},
        )
    if not _has_any_access(session, user_id, now):
        return _no_active_access()
    review = pzk_review.upsert(
        session=session, user_id=user_id, rating=rating, content=content, now=now
    )
    return Ok(_my_review_dto(review))


def delete_my_review(
    *, session: Session, user_id: uuid.UUID, now: datetime | None = None
) -> Result[None]:
    if not _has_any_access(session, user_id, now or utc_now()):
        return _no_active_access()
    review = pzk_review.get_by_user(session=session, user_id=user_id)
    if review is None:
        return Err(ErrorKind.not_found, "Review not found")
    pzk_review.remove(session=session, review=review)
    return Ok(None)
