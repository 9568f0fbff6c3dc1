"""
Weight entry model.
"""
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, Numeric, String
from sqlmodel import Field, SQLModel

from dietpanel.enums import WeightSource

from .base import UTCDateTime, utc_now


class WeightEntry(SQLModel, table=True):
    """
    One body-weight measurement.

    Fields:
    - weight: kilograms, one decimal place (numeric(4,1))
    - measurement_date: instant of measurement; at most one entry per user
      per Europe/Warsaw calendar day
    - source: who entered it (patient or dietitian)
    - is_backfill: entered for a day before "today" in Warsaw
    - is_outlier / outlier_confirmed: anomaly flag and its confirmation
    """
    __tablename__ = "weight_entries"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    weight: Decimal = Field(sa_column=Column(Numeric(4, 1), nullable=False))
    measurement_date: datetime = Field(
        sa_column=Column(UTCDateTime(timezone=True), nullable=False, index=True)
    )
    source: WeightSource = Field(sa_column=Column(String(16), nullable=False))
    is_backfill: bool = Field(default=False)
    is_outlier: bool = Field(default=False)
    outlier_confirmed: bool | None = Field(default=None)
    note: str | None = Field(default=None, max_length=200)
    created_by: uuid.UUID = Field(foreign_key="users.id")
    updated_by: uuid.UUID | None = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True), nullable=True)
    )
