"""PZK note CRUD: one note per (user, material)"""
import uuid
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, delete, select

from dietpanel.models import PzkNote


def get(*, session: Session, user_id: uuid.UUID, material_id: uuid.UUID) -> PzkNote | None:
    statement = select(PzkNote).where(
        PzkNote.user_id == user_id, PzkNote.material_id == material_id
    )
    return session.exec(statement).first()


def upsert(
    *, session: Session, user_id: uuid.UUID, material_id: uuid.UUID, content: str, now: datetime
) -> PzkNote:
    """Insert or replace the note; a concurrent insert falls back to an update."""
    note = get(session=session, user_id=user_id, material_id=material_id)
    if note is None:
        note = PzkNote(
            user_id=user_id, material_id=material_id, content=content, created_at=now, updated_at=now
        )
        session.add(note)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            note = get(session=session, user_id=user_id, material_id=material_id)
            if note is None:
                raise
        else:
            session.refresh(note)
            return note

    note.content = content
    note.updated_at = now
    session.add(note)
    session.commit()
    session.refresh(note)
    return note


def remove(*, session: Session, user_id: uuid.UUID, material_id: uuid.UUID) -> None:
    session.exec(
        delete(PzkNote).where(PzkNote.user_id == user_id, PzkNote.material_id == material_id)
    )
    session.commit()
