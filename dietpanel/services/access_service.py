"""
PZK access summary.

Turns a user's active ``pzk_module_access`` rows into the summary the client
uses to render the zone: which modules are active and until when.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlmodel import Session

from dietpanel.crud import pzk_access
from dietpanel.models import utc_now

logger = logging.getLogger(__name__)

PZK_MODULES = (1, 2, 3)


class InvalidModuleError(Exception):
    """Persistence returned a module number outside 1..3."""

    def __init__(self, module: int) -> None:
        super().__init__(f"Invalid PZK module number: {module}")
        self.module = module


@dataclass(frozen=True)
class AccessRecord:
    module: int
    start_at: str
    expires_at: str


@dataclass(frozen=True)
class AccessSummary:
    has_any_active_access: bool
    active_modules: list[int]
    access: list[AccessRecord]
    server_time: str


def is_valid_module(module: object) -> bool:
    return isinstance(module, int) and not isinstance(module, bool) and module in PZK_MODULES


def get_access_summary(
    *, session: Session, user_id: uuid.UUID, now: datetime | None = None
) -> AccessSummary:
    """
    Build the access summary for a user.

    ``access`` keeps one entry per active grant (several per module are
    possible); ``active_modules`` is deduplicated and ascending.

    Raises:
        InvalidModuleError: a stored grant references a module outside 1..3
    """
    now = now or utc_now()
    rows = pzk_access.list_active_access_by_user_id(session=session, user_id=user_id, now=now)

    records: list[AccessRecord] = []
    for row in rows:
        if not is_valid_module(row.module):
            logger.error("Access row %s has invalid module %r", row.id, row.module)
            raise InvalidModuleError(row.module)
        records.append(
            AccessRecord(
                module=row.module,
                start_at=row.start_at.isoformat(),
                expires_at=row.expires_at.isoformat(),
            )
        )

    active_modules = sorted({r.module for r in records})
    return AccessSummary(
        has_any_active_access=bool(active_modules),
        active_modules=active_modules,
        access=records,
        server_time=now.isoformat(),
    )


def has_active_access_to_module(
    *, session: Session, user_id: uuid.UUID, module: int, now: datetime | None = None
) -> bool:
    return pzk_access.has_active_access_to_module(
        session=session, user_id=user_id, module=module, now=now or utc_now()
    )
