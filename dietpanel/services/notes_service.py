"""
Private per-material notes.

A note can only be read or written for a published material the user has
module access to. Draft, archived, missing and publish_soon materials answer
not_found; published without access answers forbidden(no_module_access).
"""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlmodel import Session

from dietpanel.crud import pzk_access, pzk_material, pzk_note
from dietpanel.enums import MaterialStatus
from dietpanel.models import PzkNote, utc_now
from dietpanel.services.result import Err, ErrorKind, Ok, Result

MAX_NOTE_LENGTH = 10_000


def _note_dto(note: PzkNote) -> dict:
    return {
        "materialId": str(note.material_id),
        "content": note.content,
        "updatedAt": note.updated_at.isoformat(),
    }


def _check_material(
    *, session: Session, user_id: uuid.UUID, material_id: uuid.UUID, now: datetime
) -> Err | None:
    material = pzk_material.get_by_id(session=session, material_id=material_id)
    if material is None or material.status != MaterialStatus.published:
        return Err(ErrorKind.not_found, "Material not found")
    if not pzk_access.has_active_access_to_module(
        session=session, user_id=user_id, module=material.module, now=now
    ):
        return Err(
            ErrorKind.forbidden, "No active access to this module", reason="no_module_access"
        )
    return None


def get_note(
    *, session: Session, user_id: uuid.UUID, material_id: uuid.UUID, now: datetime | None = None
) -> Result[dict | None]:
    err = _check_material(session=session, user_id=user_id, material_id=material_id, now=now or utc_now())
    if err is not None:
        return err
    note = pzk_note.get(session=session, user_id=user_id, material_id=material_id)
    return Ok(_note_dto(note) if note else None)


def upsert_note(
    *,
    session: Session,
    user_id: uuid.UUID,
    material_id: uuid.UUID,
    content: str,
    now: datetime | None = None,
) -> Result[dict]:
    now = now or utc_now()
    content = content.strip()
    if not content or len(content) > MAX_NOTE_LENGTH:
        return Err(
            ErrorKind.validation,
            f"Note must be between 1 and {MAX_NOTE_LENGTH} characters",
            details={"field": "content"},
        )
    err = _check_material(session=session, user_id=user_id, material_id=material_id, now=now)
    if err is not None:
        return err
    note = pzk_note.upsert(
        session=session, user_id=user_id, material_id=material_id, content=content, now=now
    )
    return Ok(_note_dto(note))


def delete_note(
    *, session: Session, user_id: uuid.UUID, material_id: uuid.UUID, now: datetime | None = None
) -> Result[None]:
    err = _check_material(session=session, user_id=user_id, material_id=material_id, now=now or utc_now())
    if err is not None:
        return err
    pzk_note.remove(session=session, user_id=user_id, material_id=material_id)
    return Ok(None)
