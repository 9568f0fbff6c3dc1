"""
Auth routes.

Cookie-session login, logout, session lookup, invitation-based signup and
password reset by email link.
"""
from __future__ import annotations

import logging

import redis
from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response
from fastapi.responses import JSONResponse

from dietpanel.api import errors
from dietpanel.api.deps import (
    AuditDep,
    CurrentUser,
    MailerDep,
    RedisDep,
    SessionDep,
    SessionTokenDep,
    no_store,
)
from dietpanel.api.schemas import (
    ApiEnvelope,
    LoginRequest,
    PasswordResetConfirmRequest,
    PasswordResetRequest,
    SignupRequest,
    ok,
)
from dietpanel.core.config import settings
from dietpanel.core.redis import hit_fixed_window
from dietpanel.enums import UserRole
from dietpanel.services import auth_service, password_reset_service
from dietpanel.services.result import Err

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _set_session_cookie(response: Response, result: auth_service.LoginSuccess) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=result.token,
        max_age=settings.SESSION_EXPIRE_DAYS * 24 * 3600,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


def _clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


def _check_rate_limit(client: redis.Redis | None, ip: str | None) -> None:
    """
    Per-IP fixed window on the login route.

    Redis outages let the request through; the per-email lockout still applies.
    """
    if not settings.LOGIN_RATE_LIMIT_ENABLED or client is None or not ip:
        return
    try:
        allowed = hit_fixed_window(
            client, f"login:ip:{ip}", limit=settings.LOGIN_RATE_LIMIT_PER_MINUTE, window_seconds=60
        )
    except redis.RedisError as e:
        logger.warning("Login rate limiter unavailable: %s", e)
        return
    if not allowed:
        raise errors.AppError(
            code="rate_limited", message="Too many login attempts, try again later", status_code=429
        )


@router.post("/login", response_model=ApiEnvelope)
def login(
    request: Request,
    response: Response,
    session: SessionDep,
    audit: AuditDep,
    redis_client: RedisDep,
    body: LoginRequest,
) -> ApiEnvelope:
    """
    Password login.

    Request path: POST /api/v1/auth/login

    Sets the httpOnly session cookie and returns the role's landing page:

        {"data": {"redirectUrl": "/pacjent/waga"}, "error": null}
    """
    ip = _client_ip(request)
    _check_rate_limit(redis_client, ip)

    result = auth_service.login(
        session=session,
        audit=audit,
        email=body.email,
        password=body.password,
        ip=ip,
        user_agent=request.headers.get("user-agent"),
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)

    _set_session_cookie(response, result.value)
    return ok({"redirectUrl": result.value.redirect_url})


@router.post("/logout", status_code=204)
def logout(session: SessionDep, audit: AuditDep, token: SessionTokenDep) -> Response:
    """Invalidate the session. The cookie is cleared whatever the outcome."""
    result = auth_service.logout(session=session, audit=audit, token=token)
    if isinstance(result, Err):
        app_error = errors.from_err(result)
        failed = JSONResponse(
            status_code=app_error.status_code,
            content={"data": None, "error": app_error.to_error()},
        )
        _clear_session_cookie(failed)
        return failed

    done = Response(status_code=204)
    _clear_session_cookie(done)
    return done


@router.get("/session", response_model=ApiEnvelope, dependencies=[Depends(no_store)])
def current_session(user: CurrentUser) -> ApiEnvelope:
    return ok({"id": str(user.id), "email": user.email, "role": UserRole(user.role).value})


@router.post("/signup", response_model=ApiEnvelope, status_code=201)
def signup(
    response: Response,
    session: SessionDep,
    audit: AuditDep,
    body: SignupRequest,
) -> ApiEnvelope:
    """
    Create a patient account from an invitation and log it in.

    Request path: POST /api/v1/auth/signup
    """
    result = auth_service.signup(
        session=session,
        audit=audit,
        invitation_token=body.invitation_token,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        consents=[c.model_dump() for c in body.consents],
        age=body.age,
        gender=body.gender,
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)

    signed_up = result.value
    _set_session_cookie(response, signed_up)
    return ok(
        {
            "user": {
                "id": str(signed_up.user.id),
                "email": signed_up.user.email,
                "role": UserRole(signed_up.user.role).value,
                "firstName": signed_up.user.first_name,
                "lastName": signed_up.user.last_name,
            },
            "redirectUrl": signed_up.redirect_url,
        }
    )


@router.post("/password-reset-request", response_model=ApiEnvelope)
def request_password_reset(
    session: SessionDep,
    audit: AuditDep,
    background_tasks: BackgroundTasks,
    mailer: MailerDep,
    body: PasswordResetRequest,
) -> ApiEnvelope:
    """
    Mail a reset link if the account exists.

    Request path: POST /api/v1/auth/password-reset-request

    The answer is identical for known and unknown emails.
    """
    password_reset_service.request_reset(
        session=session,
        audit=audit,
        background_tasks=background_tasks,
        mailer=mailer,
        email=body.email,
    )
    return ok({"message": "If the account exists, a password reset link has been sent."})


@router.post("/password-reset-confirm", response_model=ApiEnvelope)
def confirm_password_reset(
    response: Response,
    session: SessionDep,
    audit: AuditDep,
    body: PasswordResetConfirmRequest,
) -> ApiEnvelope:
    """
    Set a new password with a reset token; every session of the account ends.

    Request path: POST /api/v1/auth/password-reset-confirm
    """
    result = password_reset_service.confirm_reset(
        session=session, audit=audit, token=body.token, password=body.password
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    _clear_session_cookie(response)
    return ok({"message": "Password changed, log in with the new password."})
