"""
Analytics / audit event model.
"""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from .base import UTCDateTime, utc_now


class Event(SQLModel, table=True):
    """
    Append-only event log.

    Written best-effort: a failed insert never fails the request that caused it.
    """
    __tablename__ = "events"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID | None = Field(default=None, foreign_key="users.id", index=True)
    event_type: str = Field(max_length=64, index=True)
    properties: dict | None = Field(default=None, sa_column=Column(JSON))
    timestamp: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )
