"""
PZK content zone models.

Structure: module (1..3) -> category -> material -> pdfs / videos.
Access to a module is granted by time-boxed ``PzkModuleAccess`` rows.
"""
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from dietpanel.enums import MaterialStatus

from .base import UTCDateTime, utc_now


class PzkCategory(SQLModel, table=True):
    __tablename__ = "pzk_categories"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    slug: str = Field(sa_column=Column(String(64), unique=True, nullable=False))
    label: str = Field(max_length=120)
    description: str | None = Field(default=None)
    display_order: int = Field(default=0)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )


class PzkMaterial(SQLModel, table=True):
    """
    A piece of PZK content.

    ``status`` drives visibility, see ``MaterialStatus``.
    """
    __tablename__ = "pzk_materials"
    __table_args__ = (CheckConstraint("module BETWEEN 1 AND 3", name="ck_pzk_materials_module"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    module: int = Field(index=True)
    category_id: uuid.UUID = Field(foreign_key="pzk_categories.id", index=True)
    status: MaterialStatus = Field(sa_column=Column(String(16), nullable=False, index=True))
    order: int = Field(default=0)
    title: str = Field(max_length=200)
    description: str | None = Field(default=None)
    content_md: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )


class PzkMaterialPdf(SQLModel, table=True):
    """
    PDF attachment of a material.

    ``object_key`` is the storage key; it must never be serialized to clients.
    """
    __tablename__ = "pzk_material_pdfs"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    material_id: uuid.UUID = Field(foreign_key="pzk_materials.id", index=True)
    object_key: str = Field(max_length=512)
    file_name: str | None = Field(default=None, max_length=255)
    content_type: str = Field(default="application/pdf", max_length=100)
    display_order: int = Field(default=0)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )


class PzkMaterialVideo(SQLModel, table=True):
    __tablename__ = "pzk_material_videos"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    material_id: uuid.UUID = Field(foreign_key="pzk_materials.id", index=True)
    youtube_video_id: str = Field(max_length=32)
    title: str | None = Field(default=None, max_length=200)
    display_order: int = Field(default=0)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )


class PzkModuleAccess(SQLModel, table=True):
    """
    Time-boxed entitlement to one module.

    Active iff ``revoked_at IS NULL AND start_at <= now < expires_at``.
    Rows are append-only; several rows per (user, module) are allowed.
    """
    __tablename__ = "pzk_module_access"
    __table_args__ = (
        CheckConstraint("module BETWEEN 1 AND 3", name="ck_pzk_module_access_module"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    module: int
    start_at: datetime = Field(sa_column=Column(UTCDateTime(timezone=True), nullable=False))
    expires_at: datetime = Field(sa_column=Column(UTCDateTime(timezone=True), nullable=False))
    revoked_at: datetime | None = Field(
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


class PzkNote(SQLModel, table=True):
    __tablename__ = "pzk_notes"
    __table_args__ = (UniqueConstraint("user_id", "material_id", name="uq_pzk_notes_user_material"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    material_id: uuid.UUID = Field(foreign_key="pzk_materials.id")
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )


class PzkReview(SQLModel, table=True):
    """One review per user; rating 1..6."""
    __tablename__ = "pzk_reviews"
    __table_args__ = (CheckConstraint("rating BETWEEN 1 AND 6", name="ck_pzk_reviews_rating"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(
        unique=True, foreign_key="users.id", index=True
    )
    rating: int
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False, index=True),
    )
