"""
Login, logout and invitation-based signup.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from dietpanel.core import security
from dietpanel.core.config import settings
from dietpanel.crud import auth_session, invitation as invitation_crud
from dietpanel.crud import login_attempt
from dietpanel.crud import user as user_crud
from dietpanel.enums import Gender, UserRole, UserStatus
from dietpanel.models import User, utc_now
from dietpanel.services.audit import AuditQueue
from dietpanel.services.invitation_service import check_invitation
from dietpanel.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

REQUIRED_CONSENTS = ("data_processing", "health_data")

REDIRECT_BY_ROLE = {
    UserRole.dietitian: "/dietetyk/pacjenci",
    UserRole.patient: "/pacjent/waga",
}


@dataclass(frozen=True)
class LoginSuccess:
    token: str
    expires_at: datetime
    user: User
    redirect_url: str


def _session_ttl() -> timedelta:
    return timedelta(days=settings.SESSION_EXPIRE_DAYS)


def login(
    *,
    session: Session,
    audit: AuditQueue,
    email: str,
    password: str,
    ip: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> Result[LoginSuccess]:
    """
    Password login with per-email lockout.

    Unknown emails and wrong passwords answer the same way so the response
    does not reveal which accounts exist.
    """
    now = now or utc_now()
    email = email.strip().lower()

    since = now - timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)
    failures = login_attempt.failed_since(session=session, email=email, since=since)
    if len(failures) >= settings.LOGIN_MAX_FAILED_ATTEMPTS:
        retry_after = failures[0].attempted_at + timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES)
        return Err(
            ErrorKind.rate_limited,
            "Too many failed login attempts, try again later",
            details={"retryAfter": retry_after.isoformat()},
        )

    user = user_crud.get_by_email(session=session, email=email)
    if user is None or not security.verify_password(password, user.password_hash):
        login_attempt.record(
            session=session, email=email, success=False, ip_address=ip, user_agent=user_agent
        )
        if user is not None:
            audit.emit("login_failed", user_id=user.id, properties={"reason": "invalid_password"})
        return Err(ErrorKind.unauthenticated, "Invalid email or password", code="invalid_credentials")

    if user.status != UserStatus.active:
        return Err(
            ErrorKind.forbidden,
            "This account is not active",
            reason="account_inactive",
        )

    login_attempt.record(
        session=session, email=email, success=True, ip_address=ip, user_agent=user_agent
    )
    token, row = auth_session.create(session=session, user_id=user.id, ttl=_session_ttl())
    audit.emit("login_success", user_id=user.id, properties={"role": UserRole(user.role).value})
    return Ok(
        LoginSuccess(
            token=token,
            expires_at=row.expires_at,
            user=user,
            redirect_url=REDIRECT_BY_ROLE[UserRole(user.role)],
        )
    )


def logout(*, session: Session, audit: AuditQueue, token: str | None) -> Result[None]:
    if not token:
        return Err(ErrorKind.unauthenticated, "Not logged in")
    found = auth_session.get_valid(session=session, token=token)
    if found is None:
        return Err(ErrorKind.unauthenticated, "Session expired or invalid")
    row, user = found
    auth_session.invalidate(session=session, session_id=row.id)
    audit.emit("logout", user_id=user.id)
    return Ok(None)


def signup(
    *,
    session: Session,
    audit: AuditQueue,
    invitation_token: str,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    consents: list[dict],
    age: int | None = None,
    gender: Gender | None = None,
    now: datetime | None = None,
) -> Result[LoginSuccess]:
    now = now or utc_now()
    email = email.strip().lower()

    checked = check_invitation(session=session, token=invitation_token, now=now)
    if isinstance(checked, Err):
        return checked
    invitation = checked.value
    if invitation.email and invitation.email != email:
        return Err(
            ErrorKind.validation,
            "Email does not match the invitation",
            code="invalid_invitation",
        )

    accepted = {c.get("type") for c in consents if c.get("accepted")}
    missing = [c for c in REQUIRED_CONSENTS if c not in accepted]
    if missing:
        return Err(
            ErrorKind.validation,
            "Required consents were not accepted",
            details={"missingConsents": missing},
        )

    if user_crud.get_by_email(session=session, email=email) is not None:
        return Err(ErrorKind.conflict, "Email is already registered", code="email_conflict")

    try:
        user = user_crud.create(
            session=session,
            email=email,
            password_hash=security.get_password_hash(password),
            role=UserRole.patient,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            age=age,
            gender=gender,
            commit=False,
        )
        if not invitation_crud.mark_used(
            session=session, invitation_id=invitation.id, user_id=user.id
        ):
            session.rollback()
            return Err(
                ErrorKind.validation, "Invitation has already been used", code="invalid_invitation"
            )
        session.commit()
    except IntegrityError:
        session.rollback()
        return Err(ErrorKind.conflict, "Email is already registered", code="email_conflict")
    session.refresh(user)

    token, row = auth_session.create(session=session, user_id=user.id, ttl=_session_ttl())
    audit.emit(
        "signup",
        user_id=user.id,
        properties={"invitationId": invitation.id, "consents": sorted(accepted)},
    )
    return Ok(
        LoginSuccess(
            token=token,
            expires_at=row.expires_at,
            user=user,
            redirect_url=REDIRECT_BY_ROLE[UserRole.patient],
        )
    )


def resolve_session(*, session: Session, token: str | None) -> tuple[str, User] | None:
    """(session id, user) for a cookie token, or None."""
    if not token:
        return None
    found = auth_session.get_valid(session=session, token=token)
    if found is None:
        return None
    row, user = found
    return row.id, user