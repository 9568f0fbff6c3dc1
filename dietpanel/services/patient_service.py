"""
Dietitian view of patients.

Weeks are ISO weeks (Monday start) in Europe/Warsaw. A patient meets the
weekly obligation with at least one entry in the current week.
"""
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlmodel import Session

from dietpanel.crud import auth_session
from dietpanel.crud import patient as patient_crud
from dietpanel.crud import weight as weight_crud
from dietpanel.enums import UserStatus, WeightSource
from dietpanel.models import User, WeightEntry, utc_now
from dietpanel.services.audit import AuditQueue
from dietpanel.services.purchase_service import add_months
from dietpanel.services.result import Err, ErrorKind, Ok, Result
from dietpanel.services.weight_service import WeightService
from dietpanel.utils.edit_window import WARSAW

logger = logging.getLogger(__name__)

COMPLIANCE_WEEKS = 12
PRESENCE_WEEKS = 52
CHART_PERIODS = (30, 90)
DELETION_AFTER_MONTHS = 24
TREND_THRESHOLD_KG = 0.1

STATUS_MESSAGES = {
    UserStatus.active: "Patient status updated. Reminders will resume.",
    UserStatus.paused: "Patient status updated. Reminders will be paused.",
    UserStatus.ended: "Patient status updated. Account scheduled for deletion in 24 months.",
}


def _round1(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return _aware(value).isoformat() if value is not None else None


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def week_bounds(now: datetime) -> tuple[datetime, datetime]:
    """[Monday 00:00, next Monday 00:00) of the Warsaw week containing ``now``, as UTC."""
    monday = week_start(now.astimezone(WARSAW).date())
    start = datetime.combine(monday, time.min, tzinfo=WARSAW)
    end = datetime.combine(monday + timedelta(days=7), time.min, tzinfo=WARSAW)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def compliance_statistics(
    weeks_with_entry: set[date], current_week: date
) -> dict[str, Any]:
    """
    Weekly compliance from the set of Mondays that have at least one entry.

    - weeklyComplianceRate: share of the last 12 weeks (current included) with an entry
    - currentStreak: consecutive weeks with an entry, counting back from the current one
    - longestStreak: longest run of consecutive weeks with an entry
    """
    recent = [
        w for w in weeks_with_entry if 0 <= (current_week - w).days // 7 < COMPLIANCE_WEEKS
    ]

    current = 0
    cursor = current_week
    while cursor in weeks_with_entry:
        current += 1
        cursor -= timedelta(weeks=1)

    longest = run = 0
    previous: date | None = None
    for monday in sorted(weeks_with_entry):
        run = run + 1 if previous is not None and (monday - previous).days == 7 else 1
        longest = max(longest, run)
        previous = monday

    return {
        "weeklyComplianceRate": len(recent) / COMPLIANCE_WEEKS,
        "currentStreak": current,
        "longestStreak": longest,
    }


def moving_average_7(weights: list[float], index: int) -> float:
    """Mean of up to seven entries ending at ``index`` (entries, not days)."""
    window = weights[max(0, index - 6) : index + 1]
    return _round1(sum(window) / len(window))


def weight_statistics(entries: list[WeightEntry]) -> dict[str, Any]:
    if not entries:
        start = end = 0.0
    else:
        start, end = float(entries[0].weight), float(entries[-1].weight)
    if len(entries) < 2:
        return {
            "startWeight": start,
            "endWeight": end,
            "change": 0.0,
            "changePercent": 0.0,
            "avgWeeklyChange": 0.0,
            "trendDirection": "stable",
        }

    change = _round1(end - start)
    change_percent = _round1(change / start * 100) if start > 0 else 0.0
    days = (entries[-1].measurement_date - entries[0].measurement_date).days
    avg_weekly = _round1(change / days * 7) if days > 0 else 0.0
    if change > TREND_THRESHOLD_KG:
        trend = "increasing"
    elif change < -TREND_THRESHOLD_KG:
        trend = "decreasing"
    else:
        trend = "stable"
    return {
        "startWeight": start,
        "endWeight": end,
        "change": change,
        "changePercent": change_percent,
        "avgWeeklyChange": avg_weekly,
        "trendDirection": trend,
    }


def patient_summary(patient: User) -> dict[str, Any]:
    return {
        "id": str(patient.id),
        "firstName": patient.first_name,
        "lastName": patient.last_name,
        "status": UserStatus(patient.status).value,
    }


class PatientService:
    def __init__(self, *, session: Session, audit: AuditQueue, dietitian_id: uuid.UUID) -> None:
        self.session = session
        self.audit = audit
        self.dietitian_id = dietitian_id

    def _patient(self, patient_id: uuid.UUID) -> Result[User]:
        patient = patient_crud.get(session=self.session, patient_id=patient_id)
        if patient is None:
            return Err(ErrorKind.not_found, "Patient not found")
        return Ok(patient)

    def list_patients(
        self,
        *,
        status: UserStatus | None,
        limit: int,
        offset: int,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """One page of patients; ``status=None`` lists every status."""
        start, end = week_bounds(now or utc_now())
        total = patient_crud.count(session=self.session, status=status)
        rows = patient_crud.list_with_activity(
            session=self.session,
            status=status,
            week_start=start,
            week_end=end,
            limit=limit,
            offset=offset,
        )
        patients = [
            {
                "id": str(p.id),
                "firstName": p.first_name,
                "lastName": p.last_name,
                "email": p.email,
                "age": p.age,
                "gender": p.gender,
                "status": UserStatus(p.status).value,
                "createdAt": _iso(p.created_at),
                "lastWeightEntry": _iso(last),
                "weeklyObligationMet": met,
            }
            for p, last, met in rows
        ]
        self.audit.emit(
            "view_patients_list",
            user_id=self.dietitian_id,
            properties={
                "status": status.value if status else "all",
                "limit": limit,
                "offset": offset,
                "total": total,
            },
        )
        return {
            "patients": patients,
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "hasMore": offset + len(patients) < total,
            },
        }

    def get_details(
        self, *, patient_id: uuid.UUID, now: datetime | None = None
    ) -> Result[dict[str, Any]]:
        found = self._patient(patient_id)
        if isinstance(found, Err):
            return found
        patient = found.value
        now = now or utc_now()

        current_week = week_start(now.astimezone(WARSAW).date())
        since = datetime.combine(
            current_week - timedelta(weeks=PRESENCE_WEEKS - 1), time.min, tzinfo=WARSAW
        )
        dates = weight_crud.measurement_dates_since(
            session=self.session, user_id=patient.id, since=since
        )
        weeks = {week_start(_aware(d).astimezone(WARSAW).date()) for d in dates}
        total, last = weight_crud.summary(session=self.session, user_id=patient.id)

        self.audit.emit(
            "view_patient_details",
            user_id=self.dietitian_id,
            properties={"patientId": patient.id},
        )
        return Ok(
            {
                "patient": {
                    **patient_summary(patient),
                    "email": patient.email,
                    "age": patient.age,
                    "gender": patient.gender,
                    "createdAt": _iso(patient.created_at),
                    "updatedAt": _iso(patient.updated_at),
                },
                "statistics": {
                    "totalEntries": total,
                    **compliance_statistics(weeks, current_week),
                    "lastEntry": _iso(last),
                },
            }
        )

    def update_status(
        self,
        *,
        patient_id: uuid.UUID,
        status: UserStatus,
        note: str | None = None,
        now: datetime | None = None,
    ) -> Result[tuple[User, str]]:
        """
        Change a patient's status.

        Ending care schedules the account for deletion 24 months later. Any
        status other than active also ends the patient's open sessions.
        """
        found = self._patient(patient_id)
        if isinstance(found, Err):
            return found
        patient = found.value
        now = now or utc_now()

        before = {
            "status": UserStatus(patient.status).value,
            "endedAt": _iso(patient.ended_at),
            "scheduledDeletionAt": _iso(patient.scheduled_deletion_at),
        }
        patient.status = status
        patient.ended_at = now if status == UserStatus.ended else None
        patient.scheduled_deletion_at = (
            add_months(now, DELETION_AFTER_MONTHS) if status == UserStatus.ended else None
        )
        patient.updated_at = now
        self.session.add(patient)
        if status != UserStatus.active:
            auth_session.invalidate_all_for_user(
                session=self.session, user_id=patient.id, commit=False
            )
        self.session.commit()
        self.session.refresh(patient)

        self.audit.emit(
            "update_patient_status",
            user_id=self.dietitian_id,
            properties={
                "patientId": patient.id,
                "before": before,
                "after": {
                    "status": status.value,
                    "endedAt": _iso(patient.ended_at),
                    "scheduledDeletionAt": _iso(patient.scheduled_deletion_at),
                    "note": note,
                },
            },
        )
        logger.info("Patient %s status %s -> %s", patient.id, before["status"], status.value)
        return Ok((patient, STATUS_MESSAGES[status]))

    def list_weight(
        self,
        *,
        patient_id: uuid.UUID,
        start: datetime | None,
        end: datetime | None,
        cursor: datetime | None,
        limit: int,
        now: datetime | None = None,
    ) -> Result[dict[str, Any]]:
        found = self._patient(patient_id)
        if isinstance(found, Err):
            return found
        patient = found.value

        page = WeightService(session=self.session, audit=self.audit).list_entries(
            user_id=patient.id, start=start, end=end, cursor=cursor, limit=limit
        )
        week_from, week_to = week_bounds(now or utc_now())
        met = weight_crud.exists_between(
            session=self.session, user_id=patient.id, start=week_from, end=week_to
        )
        return Ok(
            {
                "patient": patient_summary(patient),
                "entries": page.entries,
                "weeklyObligationMet": met,
                "pagination": {"hasMore": page.has_more, "nextCursor": page.next_cursor},
            }
        )

    def add_weight(
        self,
        *,
        patient_id: uuid.UUID,
        weight: Decimal,
        measurement_date: datetime,
        note: str,
        now: datetime | None = None,
    ) -> Result[tuple[WeightEntry, list[dict[str, Any]]]]:
        found = self._patient(patient_id)
        if isinstance(found, Err):
            return found
        return WeightService(session=self.session, audit=self.audit).create_entry(
            user_id=found.value.id,
            weight=weight,
            measurement_date=measurement_date,
            note=note,
            source=WeightSource.dietitian,
            actor_id=self.dietitian_id,
            now=now,
        )

    def get_chart(
        self, *, patient_id: uuid.UUID, period: int, now: datetime | None = None
    ) -> Result[dict[str, Any]]:
        """
        Entries of the last ``period`` Warsaw days (today included), oldest
        first, each with its 7-entry moving average.
        """
        if period not in CHART_PERIODS:
            return Err(
                ErrorKind.validation,
                "period must be 30 or 90",
                details={"allowed": list(CHART_PERIODS)},
            )
        found = self._patient(patient_id)
        if isinstance(found, Err):
            return found
        patient = found.value

        today = (now or utc_now()).astimezone(WARSAW).date()
        start = datetime.combine(today - timedelta(days=period - 1), time.min, tzinfo=WARSAW)
        end = datetime.combine(today + timedelta(days=1), time.min, tzinfo=WARSAW)
        entries = weight_crud.list_between(
            session=self.session,
            user_id=patient.id,
            start=start.astimezone(timezone.utc),
            end=end.astimezone(timezone.utc),
        )
        weights = [float(e.weight) for e in entries]
        points = [
            {
                "date": e.measurement_date.astimezone(WARSAW).date().isoformat(),
                "weight": weights[i],
                "source": WeightSource(e.source).value,
                "isOutlier": e.is_outlier,
                "ma7": moving_average_7(weights, i),
            }
            for i, e in enumerate(entries)
        ]

        self.audit.emit(
            "view_patient_chart",
            user_id=self.dietitian_id,
            properties={"patientId": patient.id, "period": period},
        )
        return Ok(
            {
                "patient": patient_summary(patient),
                "chartData": {
                    "entries": points,
                    "statistics": weight_statistics(entries),
                    "goalWeight": None,
                },
            }
        )

