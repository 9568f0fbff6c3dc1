"""
User, session, login-attempt and password-reset models.
"""
import uuid
from datetime import datetime

from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel

from dietpanel.enums import Gender, UserRole, UserStatus

from .base import UTCDateTime, utc_now


class User(SQLModel, table=True):
    """
    Application account.

    Fields:
    - email: unique, always stored lowercase
    - password_hash: bcrypt hash
    - role: patient or dietitian
    - status: only active accounts may log in; ending a patient schedules
      the account for deletion 24 months later
    - first_name / last_name: shown as review author (first name only)
    """
    __tablename__ = "users"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(
        max_length=255,
        sa_column=Column(String(255), unique=True, index=True, nullable=False),
    )
    password_hash: str = Field(max_length=255)
    role: UserRole = Field(sa_column=Column(String(16), nullable=False))
    status: UserStatus = Field(
        default=UserStatus.active, sa_column=Column(String(16), nullable=False)
    )
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    age: int | None = Field(default=None)
    gender: Gender | None = Field(default=None, sa_column=Column(String(16), nullable=True))
    ended_at: datetime | None = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True), nullable=True)
    )
    scheduled_deletion_at: datetime | None = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True), nullable=True)
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )


class AuthSession(SQLModel, table=True):
    """
    Server-side login session.

    ``id`` is a keyed hash of the cookie value; the raw token only lives in
    the client's cookie.
    """
    __tablename__ = "sessions"
    id: str = Field(primary_key=True, max_length=64)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    expires_at: datetime = Field(sa_column=Column(UTCDateTime(timezone=True), nullable=False))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )


class LoginAttempt(SQLModel, table=True):
    __tablename__ = "login_attempts"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(max_length=255, index=True)
    success: bool = Field(default=False)
    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None, max_length=512)
    attempted_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False, index=True),
    )


class PasswordResetToken(SQLModel, table=True):
    """
    One-time password reset token.

    Only the SHA-256 hash is stored. ``used_at`` is set exactly once, by a
    conditional update in the same transaction as the password change.
    """
    __tablename__ = "password_reset_tokens"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    token_hash: str = Field(
        sa_column=Column(String(64), unique=True, index=True, nullable=False),
    )
    expires_at: datetime = Field(sa_column=Column(UTCDateTime(timezone=True), nullable=False))
    used_at: datetime | None = Field(
        default=None, sa_column=Column(UTCDateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )
