"""
PZK material details.

Visibility:
- missing, draft, archived -> not_found, nothing about the material leaks
- publish_soon -> locked teaser (reason publish_soon or publish_soon_with_access)
- published without module access -> locked teaser (reason no_module_access, with CTA)
- published with module access -> unlocked, full content

The locked variant never carries category, content, pdfs, videos or note.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlmodel import Session

from dietpanel.crud import pzk_access, pzk_material, pzk_note
from dietpanel.enums import LockReason, MaterialStatus
from dietpanel.models import PzkMaterial, utc_now
from dietpanel.services.result import Err, ErrorKind, Ok, Result
from dietpanel.utils.purchase_url import build_purchase_url

logger = logging.getLogger(__name__)

INCLUDE_OPTIONS = ("pdfs", "videos", "note")


@dataclass(frozen=True)
class Include:
    pdfs: bool = True
    videos: bool = True
    note: bool = True

    @classmethod
    def parse(cls, raw: str | None) -> "Include":
        """
        Parse ``?include=pdfs,videos,note``.

        Absent means everything; unknown names are ignored.
        """
        if raw is None:
            return cls()
        names = {part.strip() for part in raw.split(",") if part.strip()}
        return cls(pdfs="pdfs" in names, videos="videos" in names, note="note" in names)


@dataclass
class MaterialDetails:
    id: uuid.UUID
    module: int
    status: str
    order: int
    title: str
    description: str | None
    is_locked: bool
    reason: str | None = None
    cta_url: str | None = None
    category: dict[str, Any] | None = None
    content_md: str | None = None
    pdfs: list[dict[str, Any]] = field(default_factory=list)
    videos: list[dict[str, Any]] = field(default_factory=list)
    note: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "module": self.module,
            "category": self.category,
            "status": self.status,
            "order": self.order,
            "title": self.title,
            "description": self.description,
            "contentMd": self.content_md,
            "pdfs": self.pdfs,
            "videos": self.videos,
            "note": self.note,
            "access": {
                "isLocked": self.is_locked,
                "ctaUrl": self.cta_url,
                **({"reason": self.reason} if self.reason else {}),
            },
        }


def load_visible_material(*, session: Session, material_id: uuid.UUID) -> PzkMaterial | None:
    """The material, unless it is missing, a draft or archived."""
    material = pzk_material.get_by_id(session=session, material_id=material_id)
    if material is None:
        return None
    if material.status not in (MaterialStatus.published, MaterialStatus.publish_soon):
        return None
    return material


def _locked(material: PzkMaterial, reason: LockReason, cta_url: str | None) -> MaterialDetails:
    return MaterialDetails(
        id=material.id,
        module=material.module,
        status=MaterialStatus(material.status).value,
        order=material.order,
        title=material.title,
        description=material.description,
        is_locked=True,
        reason=reason.value,
        cta_url=cta_url,
    )


def get_material_details(
    *,
    session: Session,
    user_id: uuid.UUID,
    material_id: uuid.UUID,
    include: Include,
    now: datetime | None = None,
) -> Result[MaterialDetails]:
    now = now or utc_now()
    material = load_visible_material(session=session, material_id=material_id)
    if material is None:
        return Err(ErrorKind.not_found, "Material not found")

    has_access = pzk_access.has_active_access_to_module(
        session=session, user_id=user_id, module=material.module, now=now
    )

    if material.status == MaterialStatus.publish_soon:
        reason = LockReason.publish_soon_with_access if has_access else LockReason.publish_soon
        return Ok(_locked(material, reason, None))

    if not has_access:
        return Ok(
            _locked(material, LockReason.no_module_access, build_purchase_url(material.module))
        )

    details = MaterialDetails(
        id=material.id,
        module=material.module,
        status=MaterialStatus(material.status).value,
        order=material.order,
        title=material.title,
        description=material.description,
        is_locked=False,
        content_md=material.content_md,
    )

    category = pzk_material.get_category(session=session, category_id=material.category_id)
    if category is not None:
        details.category = {
            "id": str(category.id),
            "slug": category.slug,
            "label": category.label,
            "displayOrder": category.display_order,
        }

    if include.pdfs:
        # object_key stays server-side; downloads go through presign
        details.pdfs = [
            {"id": str(pdf.id), "fileName": pdf.file_name, "displayOrder": pdf.display_order}
            for pdf in pzk_material.list_pdfs(session=session, material_id=material.id)
        ]

    if include.videos:
        details.videos = [
            {
                "id": str(video.id),
                "youtubeVideoId": video.youtube_video_id,
                "title": video.title,
                "displayOrder": video.display_order,
            }
            for video in pzk_material.list_videos(session=session, material_id=material.id)
        ]

    if include.note:
        note = pzk_note.get(session=session, user_id=user_id, material_id=material.id)
        if note is not None:
            details.note = {"content": note.content, "updatedAt": note.updated_at.isoformat()}

    return Ok(details)
