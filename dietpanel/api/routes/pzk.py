"""
PZK zone routes.

Every route below requires a patient session and the FF_PZK flag, and
answers with ``Cache-Control: no-store``. The Tpay webhook and the public
reviews feed live on ``public_router`` without the session gate.
"""
from __future__ import annotations

import logging
import uuid
from typing import Annotated
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import PlainTextResponse
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from dietpanel.api import errors
from dietpanel.api.deps import (
    AuditDep,
    MailerDep,
    PresignerDep,
    PzkUser,
    SessionDep,
    TpayDep,
    no_store,
    require_pzk_enabled,
)
from dietpanel.api.schemas import (
    ApiEnvelope,
    NoteUpsertRequest,
    PresignRequest,
    PurchaseInitiateRequest,
    ReviewUpsertRequest,
    ok,
)
from dietpanel.core.config import settings
from dietpanel.enums import ReviewSort
from dietpanel.integrations.mailer import Mailer
from dietpanel.integrations.tpay import TpayClient
from dietpanel.services import (
    access_service,
    catalog_service,
    material_service,
    notes_service,
    review_service,
)
from dietpanel.services.audit import AuditQueue
from dietpanel.services.presign_service import PdfPresignService
from dietpanel.services.purchase_service import PurchaseService
from dietpanel.services.result import Err

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pzk", tags=["pzk"], dependencies=[Depends(no_store)])
public_router = APIRouter(prefix="/pzk", tags=["pzk-public"])

PageLimit = Annotated[int, Query(ge=1, le=review_service.MAX_PAGE_SIZE)]


# ============================================================
# Access and catalog
# ============================================================


@router.get("/access", response_model=ApiEnvelope)
def get_access(session: SessionDep, user: PzkUser) -> ApiEnvelope:
    """
    Active module access for the current patient.

    Response example:
        {
            "data": {
                "hasAnyActiveAccess": true,
                "activeModules": [1],
                "access": [{"module": 1, "startAt": "...", "expiresAt": "..."}],
                "serverTime": "..."
            },
            "error": null
        }
    """
    summary = access_service.get_access_summary(session=session, user_id=user.id)
    return ok(
        {
            "hasAnyActiveAccess": summary.has_any_active_access,
            "activeModules": summary.active_modules,
            "access": [
                {"module": a.module, "startAt": a.start_at, "expiresAt": a.expires_at}
                for a in summary.access
            ],
            "serverTime": summary.server_time,
        }
    )


@router.get("/catalog", response_model=ApiEnvelope)
def get_catalog(session: SessionDep, user: PzkUser) -> ApiEnvelope:
    return ok(catalog_service.get_catalog(session=session, user_id=user.id))


# ============================================================
# Materials, PDFs, notes
# ============================================================


@router.get("/materials/{material_id}", response_model=ApiEnvelope)
def get_material(
    session: SessionDep,
    user: PzkUser,
    material_id: uuid.UUID,
    include: Annotated[str | None, Query()] = None,
) -> ApiEnvelope:
    result = material_service.get_material_details(
        session=session,
        user_id=user.id,
        material_id=material_id,
        include=material_service.Include.parse(include),
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok(result.value.to_dict())


@router.post("/materials/{material_id}/pdfs/{pdf_id}/presign", response_model=ApiEnvelope)
def presign_pdf(
    request: Request,
    session: SessionDep,
    audit: AuditDep,
    presigner: PresignerDep,
    user: PzkUser,
    material_id: uuid.UUID,
    pdf_id: uuid.UUID,
    body: PresignRequest | None = None,
) -> ApiEnvelope:
    """
    Short-lived download URL for one PDF.

    Request path: POST /api/v1/pzk/materials/{material_id}/pdfs/{pdf_id}/presign

    Response example:
        {"data": {"url": "https://...", "expiresAt": "...", "ttlSeconds": 60}, "error": null}
    """
    service = PdfPresignService(session=session, presigner=presigner, audit=audit)
    result = service.generate_presign_url(
        user_id=user.id,
        material_id=material_id,
        pdf_id=pdf_id,
        ip=request.client.host if request.client else None,
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    download = result.value
    return ok(
        {"url": download.url, "expiresAt": download.expires_at, "ttlSeconds": download.ttl_seconds}
    )


@router.get("/materials/{material_id}/note", response_model=ApiEnvelope)
def get_note(session: SessionDep, user: PzkUser, material_id: uuid.UUID) -> ApiEnvelope:
    result = notes_service.get_note(session=session, user_id=user.id, material_id=material_id)
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok(result.value)


@router.put("/materials/{material_id}/note", response_model=ApiEnvelope)
def put_note(
    session: SessionDep, user: PzkUser, material_id: uuid.UUID, body: NoteUpsertRequest
) -> ApiEnvelope:
    result = notes_service.upsert_note(
        session=session, user_id=user.id, material_id=material_id, content=body.content
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok(result.value)


@router.delete("/materials/{material_id}/note", status_code=204)
def delete_note(session: SessionDep, user: PzkUser, material_id: uuid.UUID) -> Response:
    result = notes_service.delete_note(session=session, user_id=user.id, material_id=material_id)
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return Response(status_code=204, headers={"Cache-Control": "no-store"})


# ============================================================
# Reviews
# ============================================================


@router.get("/reviews", response_model=ApiEnvelope)
def list_reviews(
    session: SessionDep,
    user: PzkUser,
    cursor: Annotated[str | None, Query()] = None,
    limit: PageLimit = review_service.DEFAULT_PAGE_SIZE,
    sort: Annotated[ReviewSort, Query()] = ReviewSort.createdAtDesc,
) -> ApiEnvelope:
    """
    One page of reviews, newest first.

    Pass the returned ``nextCursor`` back to get the next page; it is null on
    the last page.
    """
    result = review_service.list_reviews(
        session=session, user_id=user.id, sort=sort, cursor=cursor, limit=limit
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok({"items": result.value.items, "nextCursor": result.value.next_cursor})


@router.get("/reviews/me", response_model=ApiEnvelope)
def get_my_review(session: SessionDep, user: PzkUser) -> ApiEnvelope:
    result = review_service.get_my_review(session=session, user_id=user.id)
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok(result.value)


@router.put("/reviews/me", response_model=ApiEnvelope)
def put_my_review(session: SessionDep, user: PzkUser, body: ReviewUpsertRequest) -> ApiEnvelope:
    result = review_service.upsert_my_review(
        session=session, user_id=user.id, rating=body.rating, content=body.content
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok(result.value)


@router.delete("/reviews/me", status_code=204)
def delete_my_review(session: SessionDep, user: PzkUser) -> Response:
    result = review_service.delete_my_review(session=session, user_id=user.id)
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return Response(status_code=204, headers={"Cache-Control": "no-store"})


@public_router.get(
    "/reviews/public",
    response_model=ApiEnvelope,
    dependencies=[Depends(require_pzk_enabled)],
)
def list_public_reviews(
    response: Response,
    session: SessionDep,
    cursor: Annotated[str | None, Query()] = None,
    limit: PageLimit = review_service.DEFAULT_PAGE_SIZE,
    sort: Annotated[ReviewSort, Query()] = ReviewSort.createdAtDesc,
) -> ApiEnvelope:
    """Anonymized reviews for the landing page (no author names)."""
    page = review_service.list_public_reviews(
        session=session, sort=sort, cursor=cursor, limit=limit
    )
    response.headers["Cache-Control"] = "public, max-age=300"
    return ok({"items": page.items, "nextCursor": page.next_cursor})


# ============================================================
# Purchase
# ============================================================


@router.post("/purchase/initiate", response_model=ApiEnvelope)
def initiate_purchase(
    session: SessionDep,
    audit: AuditDep,
    tpay: TpayDep,
    mailer: MailerDep,
    user: PzkUser,
    body: PurchaseInitiateRequest,
) -> ApiEnvelope:
    """
    Start a Tpay payment for one module or the bundle.

    Response example:
        {"data": {"redirectUrl": "https://secure.tpay.com/...", "transactionId": "..."}, "error": null}
    """
    service = PurchaseService(session=session, tpay=tpay, audit=audit, mailer=mailer)
    result = service.initiate_purchase(user_id=user.id, module=body.module, bundle=body.bundle)
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok(
        {
            "redirectUrl": result.value.redirect_url,
            "transactionId": str(result.value.transaction_id),
        }
    )


class BodyTooLarge(Exception):
    pass


async def _read_limited_body(request: Request, limit: int) -> bytes:
    """
    Read the request body, refusing more than ``limit`` bytes.

    Content-Length is checked first; the stream is counted as well since the
    header may be absent or wrong.

    Raises:
        BodyTooLarge: declared or streamed size above ``limit``
    """
    declared = request.headers.get("content-length")
    if declared is not None:
        try:
            if int(declared) > limit:
                raise BodyTooLarge()
        except ValueError:
            pass

    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise BodyTooLarge()
        chunks.append(chunk)
    return b"".join(chunks)


def _answer(status_code: int, accepted: bool) -> PlainTextResponse:
    return PlainTextResponse("TRUE" if accepted else "FALSE", status_code=status_code)


def _process_callback(
    *,
    session: Session,
    audit: AuditQueue,
    tpay: TpayClient,
    mailer: Mailer | None,
    jws_signature: str | None,
    raw_body: bytes,
) -> PlainTextResponse:
    try:
        form = dict(parse_qsl(raw_body.decode("utf-8"), keep_blank_values=True))
    except UnicodeDecodeError:
        logger.error("Webhook body is not valid UTF-8")
        return _answer(400, False)

    tpay_transaction_id = form.get("tr_id")
    crc = form.get("tr_crc")
    if not tpay_transaction_id or not crc:
        logger.error("Webhook missing tr_id or tr_crc")
        return _answer(400, False)

    if not tpay.verify_notification(jws_signature=jws_signature, raw_body=raw_body, form=form):
        logger.error("Webhook signature rejected for tr_crc=%s", crc)
        return _answer(401, False)

    try:
        transaction_id = uuid.UUID(crc)
    except ValueError:
        logger.error("Webhook tr_crc is not a transaction id: %s", crc)
        return _answer(500, False)

    service = PurchaseService(session=session, tpay=tpay, audit=audit, mailer=mailer)
    result = service.process_payment_callback(
        transaction_id=transaction_id,
        tpay_transaction_id=tpay_transaction_id,
        success=form.get("tr_status") == "TRUE",
        amount=form.get("tr_amount"),
    )
    if isinstance(result, Err):
        return _answer(500, False)
    logger.info("Webhook for %s processed, status %s", transaction_id, result.value.value)
    return _answer(200, True)


@public_router.post("/purchase/callback", response_class=PlainTextResponse)
async def purchase_callback(
    request: Request,
    session: SessionDep,
    audit: AuditDep,
    tpay: TpayDep,
    mailer: MailerDep,
) -> PlainTextResponse:
    """
    Tpay payment notification.

    Request path: POST /api/v1/pzk/purchase/callback

    Body is ``application/x-www-form-urlencoded``
    (``tr_id=...&tr_status=TRUE&tr_amount=299.00&tr_crc=<transaction uuid>``),
    signed with the ``X-JWS-Signature`` header. Tpay expects a bare
    ``TRUE``/``FALSE`` answer and retries on anything else than TRUE.
    """
    try:
        raw_body = await _read_limited_body(request, settings.TPAY_WEBHOOK_MAX_BODY_BYTES)
    except BodyTooLarge:
        logger.warning("Webhook body above %s bytes rejected", settings.TPAY_WEBHOOK_MAX_BODY_BYTES)
        return _answer(413, False)

    try:
        return await run_in_threadpool(
            _process_callback,
            session=session,
            audit=audit,
            tpay=tpay,
            mailer=mailer,
            jws_signature=request.headers.get("x-jws-signature"),
            raw_body=raw_body,
        )
    except Exception:
        logger.exception("Webhook processing failed")
        return _answer(500, False)
