"""
Best-effort audit events.

Events are queued on FastAPI ``BackgroundTasks`` and written after the
response is sent, each in its own DB session. A failed write is logged on the
dead-letter logger and dropped; it never reaches the caller.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import BackgroundTasks
from sqlalchemy import Engine
from sqlmodel import Session

from dietpanel.crud import record_event

logger = logging.getLogger(__name__)
deadletter = logging.getLogger("dietpanel.audit.deadletter")


def _jsonable(properties: dict[str, Any] | None) -> dict[str, Any] | None:
    if properties is None:
        return None
    return {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in properties.items()}


def write_event(
    engine: Engine,
    event_type: str,
    user_id: uuid.UUID | None,
    properties: dict[str, Any] | None,
) -> None:
    try:
        with Session(engine) as session:
            record_event(
                session=session,
                event_type=event_type,
                user_id=user_id,
                properties=_jsonable(properties),
            )
    except Exception:
        deadletter.warning(
            "Dropped audit event %s for user %s: %r",
            event_type,
            user_id,
            properties,
            exc_info=True,
        )


class AuditQueue:
    """Request-scoped audit emitter."""

    def __init__(self, engine: Engine, background_tasks: BackgroundTasks) -> None:
        self.engine = engine
        self.background_tasks = background_tasks

    def emit(
        self,
        event_type: str,
        *,
        user_id: uuid.UUID | None = None,
        properties: dict[str, Any] | None = None,
    ) -> None:
        try:
            self.background_tasks.add_task(
                write_event, self.engine, event_type, user_id, properties
            )
        except Exception:
            deadletter.warning("Could not queue audit event %s", event_type, exc_info=True)
