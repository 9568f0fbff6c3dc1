"""Event CRUD"""
import uuid
from typing import Any

from sqlmodel import Session

from dietpanel.models import Event


def record_event(
    *,
    session: Session,
    event_type: str,
    user_id: uuid.UUID | None = None,
    properties: dict[str, Any] | None = None,
) -> Event:
    event = Event(user_id=user_id, event_type=event_type, properties=properties)
    session.add(event)
    session.commit()
    return event
