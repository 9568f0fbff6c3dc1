"""
Weight routes (patient role).

Request paths:
- POST   /api/v1/weight
- GET    /api/v1/weight
- PATCH  /api/v1/weight/{entry_id}
- DELETE /api/v1/weight/{entry_id}
- POST   /api/v1/weight/{entry_id}/confirm
"""
import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, Response

from dietpanel.api import errors
from dietpanel.api.deps import AuditDep, PatientUser, SessionDep
from dietpanel.api.schemas import (
    ApiEnvelope,
    ConfirmOutlierRequest,
    WeightCreateRequest,
    WeightUpdateRequest,
    ok,
)
from dietpanel.services.result import Err
from dietpanel.services.weight_service import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    WeightService,
    entry_dto,
)

router = APIRouter(prefix="/weight", tags=["weight"])


@router.post("", response_model=ApiEnvelope, status_code=201)
def create_weight(
    session: SessionDep, audit: AuditDep, user: PatientUser, body: WeightCreateRequest
) -> ApiEnvelope:
    """
    Add today's (or a backfilled) weight.

    Response example:
        {"data": {"entry": {...}, "warnings": [{"type": "anomaly_detected", ...}]}, "error": null}
    """
    result = WeightService(session=session, audit=audit).create_entry(
        user_id=user.id,
        weight=body.weight,
        measurement_date=body.measurement_date,
        note=body.note,
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    entry, warnings = result.value
    return ok({"entry": entry_dto(entry), "warnings": warnings})


@router.get("", response_model=ApiEnvelope)
def list_weight(
    session: SessionDep,
    audit: AuditDep,
    user: PatientUser,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
    cursor: Annotated[datetime | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
) -> ApiEnvelope:
    page = WeightService(session=session, audit=audit).list_entries(
        user_id=user.id, start=start_date, end=end_date, cursor=cursor, limit=limit
    )
    return ok(
        {
            "entries": page.entries,
            "pagination": {"hasMore": page.has_more, "nextCursor": page.next_cursor},
        }
    )


@router.patch("/{entry_id}", response_model=ApiEnvelope)
def update_weight(
    session: SessionDep,
    audit: AuditDep,
    user: PatientUser,
    entry_id: uuid.UUID,
    body: WeightUpdateRequest,
) -> ApiEnvelope:
    result = WeightService(session=session, audit=audit).update_entry(
        user_id=user.id, entry_id=entry_id, weight=body.weight, note=body.note
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    entry, warnings = result.value
    return ok({"entry": entry_dto(entry), "warnings": warnings})


@router.delete("/{entry_id}", status_code=204)
def delete_weight(
    session: SessionDep, audit: AuditDep, user: PatientUser, entry_id: uuid.UUID
) -> Response:
    result = WeightService(session=session, audit=audit).delete_entry(
        user_id=user.id, entry_id=entry_id
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return Response(status_code=204)


@router.post("/{entry_id}/confirm", response_model=ApiEnvelope)
def confirm_outlier(
    session: SessionDep,
    audit: AuditDep,
    user: PatientUser,
    entry_id: uuid.UUID,
    body: ConfirmOutlierRequest,
) -> ApiEnvelope:
    result = WeightService(session=session, audit=audit).confirm_outlier(
        user_id=user.id, entry_id=entry_id, confirmed=body.confirmed
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok({"entry": entry_dto(result.value)})
