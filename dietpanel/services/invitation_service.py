"""
Signup invitations.

A dietitian creates an invitation for an email; the raw token only travels in
the invitation link, the database keeps its SHA-256 hash.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from fastapi import BackgroundTasks
from sqlmodel import Session

from dietpanel.core.config import settings
from dietpanel.crud import invitation as invitation_crud
from dietpanel.integrations.mailer import Mailer, invitation_email
from dietpanel.models import Invitation, utc_now
from dietpanel.services.audit import AuditQueue
from dietpanel.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

INVITATION_EXPIRY_DAYS = 7


@dataclass(frozen=True)
class CreatedInvitation:
    invitation: Invitation
    token: str
    link: str


def signup_link(token: str) -> str:
    return f"{settings.SITE_URL.rstrip('/')}/auth/signup?token={token}"


def _queue_mail(
    background_tasks: BackgroundTasks, mailer: Mailer | None, invitation: Invitation, link: str
) -> None:
    if mailer is not None and invitation.email:
        subject, text, html = invitation_email(link, invitation.expires_at.date().isoformat())
        background_tasks.add_task(
            mailer.send_best_effort, to=invitation.email, subject=subject, text=text, html=html
        )


def check_invitation(
    *, session: Session, token: str, now: datetime | None = None
) -> Result[Invitation]:
    """
    A usable invitation for a raw token.

    Unknown tokens are not_found; used or expired ones are a validation error
    with code ``invalid_invitation``.
    """
    now = now or utc_now()
    invitation = invitation_crud.get_by_token(session=session, token=token)
    if invitation is None:
        return Err(ErrorKind.not_found, "Invitation not found", code="invalid_invitation")
    if invitation.used_at is not None or invitation.expires_at <= now:
        return Err(
            ErrorKind.validation,
            "Invitation has expired or was already used",
            code="invalid_invitation",
            reason="expired_or_used",
        )
    return Ok(invitation)


def create_invitation(
    *,
    session: Session,
    audit: AuditQueue,
    background_tasks: BackgroundTasks,
    mailer: Mailer | None,
    created_by: uuid.UUID,
    email: str,
    now: datetime | None = None,
) -> CreatedInvitation:
    now = now or utc_now()
    token, invitation = invitation_crud.create(
        session=session,
        email=email,
        created_by=created_by,
        expires_at=now + timedelta(days=INVITATION_EXPIRY_DAYS),
    )
    link = signup_link(token)
    _queue_mail(background_tasks, mailer, invitation, link)
    audit.emit(
        "invitation_created",
        user_id=created_by,
        properties={"invitationId": invitation.id},
    )
    logger.info("Invitation %s created by %s", invitation.id, created_by)
    return CreatedInvitation(invitation=invitation, token=token, link=link)


def resend_invitation(
    *,
    session: Session,
    audit: AuditQueue,
    background_tasks: BackgroundTasks,
    mailer: Mailer | None,
    invitation_id: uuid.UUID,
    dietitian_id: uuid.UUID,
    now: datetime | None = None,
) -> Result[CreatedInvitation]:
    """
    Replace an unused invitation with a fresh one for the same email.

    The old token stops working; the new one gets a full expiry period.
    Only the dietitian who created the invitation may resend it.
    """
    now = now or utc_now()
    old = invitation_crud.get_by_id(session=session, invitation_id=invitation_id)
    if old is None:
        return Err(ErrorKind.not_found, "Invitation not found")
    if old.created_by != dietitian_id:
        return Err(
            ErrorKind.forbidden,
            "Only the author of an invitation can resend it",
            reason="not_invitation_owner",
        )
    if old.used_by is not None:
        return Err(
            ErrorKind.conflict,
            "Invitation was already used to create an account",
            code="invitation_already_used",
        )

    invitation_crud.revoke(session=session, invitation_id=old.id)
    token, invitation = invitation_crud.create(
        session=session,
        email=old.email,
        created_by=dietitian_id,
        expires_at=now + timedelta(days=INVITATION_EXPIRY_DAYS),
    )
    link = signup_link(token)
    _queue_mail(background_tasks, mailer, invitation, link)
    audit.emit(
        "invitation_resent",
        user_id=dietitian_id,
        properties={"oldInvitationId": old.id, "invitationId": invitation.id},
    )
    logger.info("Invitation %s replaced by %s", old.id, invitation.id)
    return Ok(CreatedInvitation(invitation=invitation, token=token, link=link))
