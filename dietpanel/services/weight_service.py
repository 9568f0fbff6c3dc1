"""
Patient weight entries.

Rules, all evaluated in Europe/Warsaw calendar days:
- at most one entry per user per day
- entries may be dated up to 7 days back and never in the future
- an entry dated before today is a backfill
- a change of more than 3.0 kg within 48 h of the previous entry is an outlier
- patient entries are editable until the end of the day after measurement
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlmodel import Session

from dietpanel.crud import weight as weight_crud
from dietpanel.enums import WeightSource
from dietpanel.models import WeightEntry, utc_now
from dietpanel.services.audit import AuditQueue
from dietpanel.services.result import Err, ErrorKind, Ok, Result
from dietpanel.utils.edit_window import WARSAW, is_within_edit_window, warsaw_day_bounds

logger = logging.getLogger(__name__)

BACKFILL_LIMIT_DAYS = 7
ANOMALY_THRESHOLD_KG = Decimal("3.0")
ANOMALY_WINDOW_HOURS = 48
DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 100

_ONE_DECIMAL = Decimal("0.1")


def round_weight(value: Decimal | float | str) -> Decimal:
    return Decimal(str(value)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def entry_dto(entry: WeightEntry) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "userId": str(entry.user_id),
        "weight": float(entry.weight),
        "measurementDate": entry.measurement_date.isoformat(),
        "source": WeightSource(entry.source).value,
        "isBackfill": entry.is_backfill,
        "isOutlier": entry.is_outlier,
        "outlierConfirmed": entry.outlier_confirmed,
        "note": entry.note,
        "createdAt": entry.created_at.isoformat(),
        "updatedAt": entry.updated_at.isoformat() if entry.updated_at else None,
    }


@dataclass
class Anomaly:
    is_outlier: bool
    warnings: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class WeightPage:
    entries: list[dict[str, Any]]
    has_more: bool
    next_cursor: str | None


def detect_anomaly(
    *,
    session: Session,
    user_id: uuid.UUID,
    weight: Decimal,
    measurement_date: datetime,
    exclude_id: uuid.UUID | None = None,
) -> Anomaly:
    previous = weight_crud.get_previous(
        session=session, user_id=user_id, before=measurement_date, exclude_id=exclude_id
    )
    if previous is None:
        return Anomaly(is_outlier=False)

    previous_weight = Decimal(previous.weight)
    change = weight - previous_weight
    hours = abs((measurement_date - _aware(previous.measurement_date)).total_seconds()) / 3600
    if abs(change) > ANOMALY_THRESHOLD_KG and hours <= ANOMALY_WINDOW_HOURS:
        return Anomaly(
            is_outlier=True,
            warnings=[
                {
                    "type": "anomaly_detected",
                    "message": (
                        f"Unusual weight change: {abs(change):.1f} kg in {int(hours)} hours. "
                        "Confirm the measurement if it is correct."
                    ),
                    "previousWeight": float(previous_weight),
                    "previousDate": previous.measurement_date.isoformat(),
                    "change": float(change),
                }
            ],
        )
    return Anomaly(is_outlier=False)


class WeightService:
    def __init__(self, *, session: Session, audit: AuditQueue) -> None:
        self.session = session
        self.audit = audit

    def create_entry(
        self,
        *,
        user_id: uuid.UUID,
        weight: Decimal,
        measurement_date: datetime,
        note: str | None = None,
        source: WeightSource = WeightSource.patient,
        actor_id: uuid.UUID | None = None,
        now: datetime | None = None,
    ) -> Result[tuple[WeightEntry, list[dict[str, Any]]]]:
        """
        Add an entry for ``user_id``.

        A dietitian adding on behalf of a patient passes ``source=dietitian``
        and their own id as ``actor_id``; the same day, backfill and anomaly
        rules apply.
        """
        now = now or utc_now()
        actor_id = actor_id or user_id
        measurement_date = _aware(measurement_date)
        weight = round_weight(weight)

        days_back = (now.astimezone(WARSAW).date() - measurement_date.astimezone(WARSAW).date()).days
        if days_back < 0 or measurement_date > now:
            return Err(
                ErrorKind.validation,
                "Measurement date cannot be in the future",
                code="backfill_limit_exceeded",
            )
        if days_back > BACKFILL_LIMIT_DAYS:
            return Err(
                ErrorKind.validation,
                f"Entries can be added at most {BACKFILL_LIMIT_DAYS} days back",
                code="backfill_limit_exceeded",
                details={"daysBack": days_back},
            )

        day_start, day_end = warsaw_day_bounds(measurement_date)
        if weight_crud.exists_between(
            session=self.session, user_id=user_id, start=day_start, end=day_end
        ):
            return Err(
                ErrorKind.conflict,
                "An entry for this day already exists, edit it instead",
                code="duplicate_entry",
            )

        anomaly = detect_anomaly(
            session=self.session, user_id=user_id, weight=weight, measurement_date=measurement_date
        )
        entry = WeightEntry(
            user_id=user_id,
            weight=weight,
            measurement_date=measurement_date,
            source=source,
            is_backfill=days_back > 0,
            is_outlier=anomaly.is_outlier,
            note=note.strip() if note else None,
            created_by=actor_id,
        )
        entry = weight_crud.save(session=self.session, entry=entry)

        properties: dict[str, Any] = {
            "entryId": entry.id,
            "weight": float(weight),
            "isBackfill": entry.is_backfill,
            "isOutlier": entry.is_outlier,
            "source": WeightSource(source).value,
        }
        if actor_id != user_id:
            properties["patientId"] = user_id
        self.audit.emit("add_weight", user_id=actor_id, properties=properties)
        return Ok((entry, anomaly.warnings))

    def list_entries(
        self,
        *,
        user_id: uuid.UUID,
        start: datetime | None = None,
        end: datetime | None = None,
        cursor: datetime | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> WeightPage:
        rows = weight_crud.list_for_user(
            session=self.session,
            user_id=user_id,
            start=start,
            end=end,
            before=cursor,
            limit=limit + 1,
        )
        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = rows[-1].measurement_date.isoformat() if has_more and rows else None
        return WeightPage(
            entries=[entry_dto(e) for e in rows], has_more=has_more, next_cursor=next_cursor
        )

    def _editable_entry(
        self, *, user_id: uuid.UUID, entry_id: uuid.UUID, now: datetime
    ) -> Result[WeightEntry]:
        entry = weight_crud.get_by_id_for_user(
            session=self.session, entry_id=entry_id, user_id=user_id
        )
        if entry is None:
            return Err(ErrorKind.not_found, "Weight entry not found")
        if entry.source != WeightSource.patient:
            return Err(
                ErrorKind.forbidden,
                "Only entries added by the patient can be changed",
                reason="dietitian_entry",
            )
        if not is_within_edit_window(entry.measurement_date, now):
            return Err(
                ErrorKind.validation,
                "The edit window for this entry has expired",
                code="edit_window_expired",
            )
        return Ok(entry)

    def update_entry(
        self,
        *,
        user_id: uuid.UUID,
        entry_id: uuid.UUID,
        weight: Decimal | None = None,
        note: str | None = None,
        now: datetime | None = None,
    ) -> Result[tuple[WeightEntry, list[dict[str, Any]]]]:
        now = now or utc_now()
        found = self._editable_entry(user_id=user_id, entry_id=entry_id, now=now)
        if isinstance(found, Err):
            return found
        entry = found.value

        before = {"weight": float(entry.weight), "note": entry.note, "isOutlier": entry.is_outlier}
        warnings: list[dict[str, Any]] = []
        if weight is not None:
            weight = round_weight(weight)
            if weight != Decimal(entry.weight):
                anomaly = detect_anomaly(
                    session=self.session,
                    user_id=user_id,
                    weight=weight,
                    measurement_date=_aware(entry.measurement_date),
                    exclude_id=entry.id,
                )
                entry.weight = weight
                entry.is_outlier = anomaly.is_outlier
                entry.outlier_confirmed = None
                warnings = anomaly.warnings
        if note is not None:
            entry.note = note.strip() or None

        entry.updated_by = user_id
        entry.updated_at = now
        entry = weight_crud.save(session=self.session, entry=entry)

        self.audit.emit(
            "edit_weight",
            user_id=user_id,
            properties={
                "entryId": entry.id,
                "before": before,
                "after": {"weight": float(entry.weight), "note": entry.note, "isOutlier": entry.is_outlier},
            },
        )
        return Ok((entry, warnings))

    def delete_entry(
        self, *, user_id: uuid.UUID, entry_id: uuid.UUID, now: datetime | None = None
    ) -> Result[None]:
        found = self._editable_entry(user_id=user_id, entry_id=entry_id, now=now or utc_now())
        if isinstance(found, Err):
            return found
        entry = found.value
        weight_crud.delete(session=self.session, entry=entry)
        self.audit.emit(
            "delete_weight",
            user_id=user_id,
            properties={"entryId": entry_id, "weight": float(entry.weight)},
        )
        return Ok(None)

    def confirm_outlier(
        self, *, user_id: uuid.UUID, entry_id: uuid.UUID, confirmed: bool
    ) -> Result[WeightEntry]:
        entry = weight_crud.get_by_id_for_user(
            session=self.session, entry_id=entry_id, user_id=user_id
        )
        if entry is None:
            return Err(ErrorKind.not_found, "Weight entry not found")
        if not entry.is_outlier:
            return Err(ErrorKind.validation, "Entry is not marked as an outlier", code="not_outlier")
        if entry.outlier_confirmed == confirmed:
            return Ok(entry)

        entry.outlier_confirmed = confirmed
        entry.updated_by = user_id
        entry.updated_at = utc_now()
        entry = weight_crud.save(session=self.session, entry=entry)
        self.audit.emit(
            "confirm_outlier",
            user_id=user_id,
            properties={"entryId": entry.id, "confirmed": confirmed},
        )
        return Ok(entry)
