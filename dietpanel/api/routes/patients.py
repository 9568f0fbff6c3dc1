"""
Patient management routes (dietitian role).

Request paths:
- GET   /api/v1/dietitian/patients
- GET   /api/v1/dietitian/patients/{patient_id}
- PATCH /api/v1/dietitian/patients/{patient_id}/status
- GET   /api/v1/dietitian/patients/{patient_id}/weight
- POST  /api/v1/dietitian/patients/{patient_id}/weight
- GET   /api/v1/dietitian/patients/{patient_id}/chart
"""
import uuid
from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query

from dietpanel.api import errors
from dietpanel.api.deps import AuditDep, DietitianUser, SessionDep, no_store
from dietpanel.api.schemas import (
    ApiEnvelope,
    DietitianWeightCreateRequest,
    PatientStatusUpdateRequest,
    ok,
)
from dietpanel.enums import UserStatus
from dietpanel.services.patient_service import PatientService
from dietpanel.services.result import Err
from dietpanel.services.weight_service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, entry_dto

router = APIRouter(
    prefix="/dietitian/patients", tags=["patients"], dependencies=[Depends(no_store)]
)


def _service(session: SessionDep, audit: AuditDep, user: DietitianUser) -> PatientService:
    return PatientService(session=session, audit=audit, dietitian_id=user.id)


PatientServiceDep = Annotated[PatientService, Depends(_service)]


@router.get("", response_model=ApiEnvelope)
def list_patients(
    service: PatientServiceDep,
    status: Annotated[Literal["active", "paused", "ended", "all"], Query()] = "active",
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ApiEnvelope:
    """
    Patients with their last weighing and this week's obligation.

    Response example:
        {"data": {"patients": [...], "pagination": {"total": 12, "limit": 50,
         "offset": 0, "hasMore": false}}, "error": null}
    """
    return ok(
        service.list_patients(
            status=None if status == "all" else UserStatus(status), limit=limit, offset=offset
        )
    )


@router.get("/{patient_id}", response_model=ApiEnvelope)
def get_patient(service: PatientServiceDep, patient_id: uuid.UUID) -> ApiEnvelope:
    result = service.get_details(patient_id=patient_id)
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok(result.value)


@router.patch("/{patient_id}/status", response_model=ApiEnvelope)
def update_patient_status(
    service: PatientServiceDep, patient_id: uuid.UUID, body: PatientStatusUpdateRequest
) -> ApiEnvelope:
    result = service.update_status(patient_id=patient_id, status=body.status, note=body.note)
    if isinstance(result, Err):
        errors.raise_for_err(result)
    patient, message = result.value
    return ok(
        {
            "patient": {
                "id": str(patient.id),
                "status": UserStatus(patient.status).value,
                "updatedAt": patient.updated_at.isoformat() if patient.updated_at else None,
                "scheduledDeletionAt": (
                    patient.scheduled_deletion_at.isoformat()
                    if patient.scheduled_deletion_at
                    else None
                ),
            },
            "message": message,
        }
    )


@router.get("/{patient_id}/weight", response_model=ApiEnvelope)
def list_patient_weight(
    service: PatientServiceDep,
    patient_id: uuid.UUID,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
    cursor: Annotated[datetime | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
) -> ApiEnvelope:
    result = service.list_weight(
        patient_id=patient_id, start=start_date, end=end_date, cursor=cursor, limit=limit
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok(result.value)


@router.post("/{patient_id}/weight", response_model=ApiEnvelope, status_code=201)
def add_patient_weight(
    service: PatientServiceDep, patient_id: uuid.UUID, body: DietitianWeightCreateRequest
) -> ApiEnvelope:
    """Weight reported to the dietitian (phone, visit); the note says how."""
    result = service.add_weight(
        patient_id=patient_id,
        weight=body.weight,
        measurement_date=body.measurement_date,
        note=body.note,
    )
    if isinstance(result, Err):
        errors.raise_for_err(result)
    entry, warnings = result.value
    return ok({"entry": entry_dto(entry), "warnings": warnings})


@router.get("/{patient_id}/chart", response_model=ApiEnvelope)
def get_patient_chart(
    service: PatientServiceDep, patient_id: uuid.UUID, period: Annotated[int, Query()] = 30
) -> ApiEnvelope:
    result = service.get_chart(patient_id=patient_id, period=period)
    if isinstance(result, Err):
        errors.raise_for_err(result)
    return ok(result.value)
