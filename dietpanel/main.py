"""
FastAPI application entry point.

Responsibilities:
1. Create the FastAPI app and its lifespan (external clients)
2. Global middleware (CORS) and Sentry
3. Global exception handlers producing the ``{data, error}`` envelope
4. Mount the API router under API_V1_STR

Run:
    uvicorn dietpanel.main:app --reload
    fastapi dev dietpanel/main.py
"""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException

from dietpanel.api.errors import AppError
from dietpanel.api.main import api_router
from dietpanel.core.config import settings
from dietpanel.core.redis import close_redis, create_redis
from dietpanel.integrations.mailer import Mailer
from dietpanel.integrations.storage import create_presigner
from dietpanel.integrations.tpay import TpayClient

logger = logging.getLogger(__name__)

CODE_BY_STATUS = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    422: "validation_error",
    429: "rate_limited",
}


def custom_generate_unique_id(route: APIRoute) -> str:
    """
    OpenAPI operation id: ``{tag}-{route name}``, e.g. "auth-login".
    """
    return f"{route.tags[0]}-{route.name}"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Build the external clients once per process.

    Routes reach them through the getters in ``dietpanel.api.deps``.
    """
    app.state.presigner = create_presigner(settings)
    app.state.tpay = TpayClient(settings)
    app.state.mailer = Mailer(settings)
    app.state.redis = create_redis(settings) if settings.LOGIN_RATE_LIMIT_ENABLED else None
    try:
        yield
    finally:
        app.state.tpay.close()
        close_redis(app.state.redis)


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":  # pragma: no cover
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)


def _error_response(
    request: Request,
    status_code: int,
    error: dict[str, Any],
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    headers = dict(headers or {})
    if request.url.path.startswith(f"{settings.API_V1_STR}/pzk"):
        headers.setdefault("Cache-Control", "no-store")
    # Audit events queued before the error still have to be written.
    return JSONResponse(
        status_code=status_code,
        content={"data": None, "error": error},
        headers=headers or None,
        background=getattr(request.state, "background_tasks", None),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """
    Application errors.

    Example body:
        {"data": null, "error": {"code": "forbidden", "message": "...", "details": {"reason": "publish_soon"}}}
    """
    return _error_response(request, exc.status_code, exc.to_error())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Framework HTTP errors (unknown route, wrong method, explicit HTTPException).

    A dict ``detail`` with ``code`` and ``message`` is passed through as is.
    """
    if isinstance(exc.detail, dict) and {"code", "message"} <= set(exc.detail.keys()):
        error: dict[str, Any] = {"code": exc.detail["code"], "message": exc.detail["message"]}
    else:
        error = {
            "code": CODE_BY_STATUS.get(exc.status_code, "error"),
            "message": str(exc.detail),
        }
    return _error_response(request, exc.status_code, error, exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Request validation errors.

    400 everywhere except the login route, which answers 422.
    """
    status_code = 422 if request.url.path == f"{settings.API_V1_STR}/auth/login" else 400
    details = [{k: v for k, v in e.items() if k not in ("ctx", "input")} for e in exc.errors()]
    return _error_response(
        request,
        status_code,
        {
            "code": "validation_error",
            "message": "Validation error",
            "details": {"errors": jsonable_encoder(details)},
        },
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        request, 500, {"code": "internal_error", "message": "Internal server error"}
    )


if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
