"""
Password reset by email link.

The request step never reveals whether an account exists: the answer is the
same either way and the mail goes out in the background. The confirm step
changes the password, consumes the token and logs the user out everywhere in
one transaction, so two devices racing with the same link cannot both win.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from fastapi import BackgroundTasks
from sqlmodel import Session

from dietpanel.core import security
from dietpanel.core.config import settings
from dietpanel.crud import auth_session, password_reset
from dietpanel.crud import user as user_crud
from dietpanel.integrations.mailer import Mailer, password_reset_email
from dietpanel.models import User, utc_now
from dietpanel.services.audit import AuditQueue
from dietpanel.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)


def reset_link(token: str) -> str:
    return f"{settings.SITE_URL.rstrip('/')}/reset-hasla/{token}"


def _invalid_token() -> Err:
    return Err(ErrorKind.validation, "Reset link has expired or is invalid", code="invalid_token")


def request_reset(
    *,
    session: Session,
    audit: AuditQueue,
    background_tasks: BackgroundTasks,
    mailer: Mailer | None,
    email: str,
    now: datetime | None = None,
) -> None:
    now = now or utc_now()
    user = user_crud.get_by_email(session=session, email=email)
    if user is None:
        logger.info("Password reset requested for an unknown email")
        return

    minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES
    token, _ = password_reset.create(
        session=session, user_id=user.id, expires_at=now + timedelta(minutes=minutes)
    )
    if mailer is not None:
        subject, text, html = password_reset_email(reset_link(token), user.first_name, minutes)
        background_tasks.add_task(
            mailer.send_best_effort, to=user.email, subject=subject, text=text, html=html
        )
    audit.emit("password_reset_requested", user_id=user.id)


def confirm_reset(
    *,
    session: Session,
    audit: AuditQueue,
    token: str,
    password: str,
    now: datetime | None = None,
) -> Result[None]:
    now = now or utc_now()
    row = password_reset.get_usable(session=session, token=token, now=now)
    if row is None:
        return _invalid_token()
    user = session.get(User, row.user_id)
    if user is None:
        return _invalid_token()

    user.password_hash = security.get_password_hash(password)
    user.updated_at = now
    session.add(user)
    if not password_reset.mark_used(session=session, token_id=row.id, now=now):
        session.rollback()
        logger.info("Password reset token %s was consumed concurrently", row.id)
        return _invalid_token()
    logged_out = auth_session.invalidate_all_for_user(
        session=session, user_id=user.id, commit=False
    )
    session.commit()

    audit.emit(
        "password_reset_completed",
        user_id=user.id,
        properties={"sessionsInvalidated": logged_out},
    )
    return Ok(None)
