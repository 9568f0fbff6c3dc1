"""
API request/response schemas.

These are not tables, only the JSON contract. Request bodies use camelCase
field names on the wire (``measurementDate``) and snake_case in Python.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel

from dietpanel.enums import Gender, UserStatus

# ============================================================
# Envelope
# ============================================================


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ApiEnvelope(BaseModel):
    """
    Response envelope used by every JSON endpoint.

    Examples:
        {"data": {...}, "error": null}
        {"data": null, "error": {"code": "forbidden", "message": "...", "details": {"reason": "no_module_access"}}}
    """
    data: Any = None
    error: ErrorBody | None = None


def ok(data: Any = None) -> ApiEnvelope:
    return ApiEnvelope(data=data)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================
# Auth
# ============================================================


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)


class Consent(CamelModel):
    type: str = Field(min_length=1, max_length=64)
    text: str | None = Field(default=None, max_length=5000)
    accepted: bool


class SignupRequest(CamelModel):
    invitation_token: str = Field(min_length=1, max_length=128)
    email: EmailStr
    password: str = Field(min_length=8, max_length=256)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    age: int | None = Field(default=None, ge=13, le=120)
    gender: Gender | None = None
    consents: list[Consent] = Field(min_length=1)


class PasswordResetRequest(CamelModel):
    email: EmailStr


class PasswordResetConfirmRequest(CamelModel):
    token: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=8, max_length=256)


# ============================================================
# Invitations
# ============================================================


class InvitationCreateRequest(CamelModel):
    email: EmailStr


# ============================================================
# Weight
# ============================================================


class WeightCreateRequest(CamelModel):
    weight: Decimal = Field(ge=Decimal("30.0"), le=Decimal("250.0"), decimal_places=1)
    measurement_date: datetime
    note: str | None = Field(default=None, max_length=200)


class WeightUpdateRequest(CamelModel):
    weight: Decimal | None = Field(default=None, ge=Decimal("30.0"), le=Decimal("250.0"))
    note: str | None = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def _at_least_one(self) -> "WeightUpdateRequest":
        if self.weight is None and self.note is None:
            raise ValueError("Provide weight or note")
        return self


class ConfirmOutlierRequest(CamelModel):
    confirmed: bool


# ============================================================
# Dietitian: patients
# ============================================================


class PatientStatusUpdateRequest(CamelModel):
    status: UserStatus
    note: str | None = Field(default=None, max_length=500)


class DietitianWeightCreateRequest(CamelModel):
    weight: Decimal = Field(ge=Decimal("30.0"), le=Decimal("250.0"), decimal_places=1)
    measurement_date: datetime
    note: str = Field(min_length=10, max_length=200)


# ============================================================
# PZK
# ============================================================


class PresignRequest(CamelModel):
    ttl_seconds: Literal[60] | None = None


class NoteUpsertRequest(CamelModel):
    content: str = Field(max_length=20_000)


class ReviewUpsertRequest(CamelModel):
    rating: int = Field(ge=1, le=6)
    content: str = Field(max_length=10_000)


class PurchaseInitiateRequest(CamelModel):
    """Either ``{"module": 1|2|3}`` or ``{"bundle": "ALL"}``."""
    module: Literal[1, 2, 3] | None = None
    bundle: Literal["ALL"] | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "PurchaseInitiateRequest":
        if (self.module is None) == (self.bundle is None):
            raise ValueError("Provide exactly one of module or bundle")
        return self
