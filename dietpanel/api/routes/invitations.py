"""
Invitation routes.

A dietitian creates invitations; the signup page validates a token before
showing the form.
"""
import uuid

from fastapi import APIRouter, BackgroundTasks

from dietpanel.api import errors
from dietpanel.api.deps import AuditDep, DietitianUser, MailerDep, SessionDep
from dietpanel.api.schemas import ApiEnvelope, InvitationCreateRequest, ok
from dietpanel.services import invitation_service
from dietpanel.services.result import Err

router = APIRouter(tags=["invitations"])


@router.post("/dietitian/invitations", response_model=ApiEnvelope, status_code=201)
def create_invitation(
    session: SessionDep,
    audit: AuditDep,
    background_tasks: BackgroundTasks,
    mailer: MailerDep,
    user: DietitianUser,
    body: InvitationCreateRequest,
) -> ApiEnvelope:
    """
    Create an invitation and mail the signup link (best effort).

    Request path: POST /api/v1/dietitian/invitations
    """
    created = invitation_service.create_invitation(
        session=session,
        audit=audit,
        background_tasks=background_tasks,
        mailer=mailer,
        created_by=user.id,
        email=body.email,
    )
    return ok(
        {
            "id": str(created.invitation.id),
            "email": created.invitation.email,
            "expiresAt": created.invitation.expires_at.isoformat(),
            "link": created.link,
        }
    )


@router.get("/invitations/{token}", response_model=ApiEnvelope)
def validate_invitation(session: SessionDep, token: str) -> ApiEnvelope:
    result = invitation_service.check_invitation(session=session, token=token)
    if isinstance(result, Err):
        errors.raise_for_err(result)
    invitation = result.value
    return ok(
        {
            "valid": True,
            "email": invitation.email,
            "expiresAt": invitation.expires_at.isoformat(),
        }
    )


@router.post("/dietitian/invitations/{invitation_id}/resend", response_model=ApiEnvelope)
def resend_invitation(
    session: SessionDep,
    audit: AuditDep,
    background_tasks: BackgroundTasks,
    mailer: MailerDep,
    user: DietitianUser,
    invitation_id: uuid.UUID,
) -> ApiEnvelope:
    """
    Revoke an unused invitation and mail a new link to the same address.

    Request path: POST /api/v1/dietitian/invitations/{invitation_id}/resend
    """
    result = invitation_service.resend_invitation(
        session=session,
        audit=audit,
        background_tasks=background_tasks,
        mailer=mailer,
        invitation_id=invitation_id,
        dietitian_id=user.id,
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    created = result.value
    return ok(
        {
            "id": str(created.invitation.id),
            "email": created.invitation.email,
            "expiresAt": created.invitation.expires_at.isoformat(),
            "link": created.link,
        }
    )
