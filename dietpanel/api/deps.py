"""
FastAPI dependencies.

Reusable building blocks for route handlers: database session, audit queue,
cookie session auth, role and feature flag gates, and the external clients
created in the application lifespan.

Key concepts:
- Depends: FastAPI dependency injection
- Generator dependencies: resources that need cleanup (database session)
- app.state: clients built once per process, see ``dietpanel.main.lifespan``
"""
from collections.abc import Generator
from typing import Annotated

import redis
from fastapi import BackgroundTasks, Depends, Request, Response
from sqlalchemy import Engine
from sqlmodel import Session

from dietpanel.api import errors
from dietpanel.core.config import settings
from dietpanel.core.db import engine
from dietpanel.enums import UserRole
from dietpanel.integrations.mailer import Mailer
from dietpanel.integrations.storage import Presigner
from dietpanel.integrations.tpay import TpayClient
from dietpanel.models import User
from dietpanel.services import auth_service
from dietpanel.services.audit import AuditQueue


def get_db() -> Generator[Session, None, None]:
    """
    Database session for one request.

    The ``with`` block closes the session after the response is sent.
    """
    with Session(engine) as session:
        yield session


def get_engine() -> Engine:
    """Engine used by background audit writes; tests override it."""
    return engine


SessionDep = Annotated[Session, Depends(get_db)]
EngineDep = Annotated[Engine, Depends(get_engine)]


def get_audit_queue(
    request: Request, background_tasks: BackgroundTasks, db_engine: EngineDep
) -> AuditQueue:
    """
    Audit queue bound to the request's background tasks.

    The tasks are also kept on ``request.state`` so the error handlers in
    ``dietpanel.main`` can run them when the route ends with an ``AppError``.
    """
    request.state.background_tasks = background_tasks
    return AuditQueue(db_engine, background_tasks)


AuditDep = Annotated[AuditQueue, Depends(get_audit_queue)]


def get_session_token(request: Request) -> str | None:
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


SessionTokenDep = Annotated[str | None, Depends(get_session_token)]


def get_optional_user(session: SessionDep, token: SessionTokenDep) -> User | None:
    """The logged-in user, or None without a valid session cookie."""
    found = auth_service.resolve_session(session=session, token=token)
    if found is None:
        return None
    _, user = found
    return user


def get_current_user(user: Annotated[User | None, Depends(get_optional_user)]) -> User:
    """
    The logged-in user.

    Raises:
        AppError: 401 when the cookie is missing, unknown or expired
    """
    if user is None:
        raise errors.unauthorized()
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_patient(user: CurrentUser) -> User:
    if user.role != UserRole.patient:
        raise errors.forbidden("forbidden_patient_role", "This area is available to patients only")
    return user


def require_dietitian(user: CurrentUser) -> User:
    if user.role != UserRole.dietitian:
        raise errors.forbidden("forbidden_dietitian_role", "This area is available to dietitians only")
    return user


PatientUser = Annotated[User, Depends(require_patient)]
DietitianUser = Annotated[User, Depends(require_dietitian)]


def require_pzk_enabled() -> None:
    """Hide the PZK zone entirely while ``FF_PZK`` is off."""
    if not settings.feature_enabled("PZK"):
        raise errors.not_found()


def get_pzk_user(user: PatientUser, _: Annotated[None, Depends(require_pzk_enabled)]) -> User:
    return user


PzkUser = Annotated[User, Depends(get_pzk_user)]


def no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


# ============================================================
# External clients (created in the lifespan, overridden in tests)
# ============================================================


def get_presigner(request: Request) -> Presigner | None:
    return getattr(request.app.state, "presigner", None)


def get_tpay_client(request: Request) -> TpayClient:
    return request.app.state.tpay


def get_mailer(request: Request) -> Mailer | None:
    return getattr(request.app.state, "mailer", None)


def get_redis(request: Request) -> redis.Redis | None:
    return getattr(request.app.state, "redis", None)


PresignerDep = Annotated[Presigner | None, Depends(get_presigner)]
TpayDep = Annotated[TpayClient, Depends(get_tpay_client)]
MailerDep = Annotated[Mailer | None, Depends(get_mailer)]
RedisDep = Annotated[redis.Redis | None, Depends(get_redis)]
