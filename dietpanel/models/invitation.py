"""
Invitation model.

A dietitian invites a patient by email; signup is only possible with a valid
invitation token. Only the SHA-256 hash of the token is stored.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel

from .base import UTCDateTime, utc_now


class Invitation(SQLModel, table=True):
    __tablename__ = "invitations"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str | None = Field(default=None, max_length=255)
    token_hash: str = Field(
        sa_column=Column(String(64), unique=True, index=True, nullable=False),
    )
    created_by: uuid.UUID = Field(foreign_key="users.id")
    expires_at: datetime = Field(sa_column=Column(UTCDateTime(timezone=True), nullable=False))
    used_at: datetime | None = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True), nullable=True)
    )
    used_by: uuid.UUID | None = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )
