from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlmodel import select

from dietpanel.enums import UserRole, WeightSource
from dietpanel.models import Event, WeightEntry
from tests.conftest import login


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _add(client, weight: float, when: datetime, note: str | None = None):
    body = {"weight": weight, "measurementDate": when.isoformat()}
    if note is not None:
        body["note"] = note
    return client.post("/api/v1/weight", json=body)


def test_create_entry_today(client, db, patient):
    r = _add(client, 72.5, _now(), note=" po śniadaniu ")
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    assert data["warnings"] == []
    entry = data["entry"]
    assert entry["weight"] == 72.5
    assert entry["source"] == "patient"
    assert entry["isOutlier"] is False
    assert entry["note"] == "po śniadaniu"

    db.expire_all()
    events = db.exec(select(Event).where(Event.event_type == "add_weight")).all()
    assert len(events) == 1
    assert events[0].user_id == patient.id


def test_one_entry_per_warsaw_day(client, patient):
    assert _add(client, 72.5, _now()).status_code == 201
    r = _add(client, 72.4, _now())
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "duplicate_entry"


def test_backfill_limits(client, patient):
    r = _add(client, 70.0, _now() - timedelta(days=3))
    assert r.status_code == 201
    assert r.json()["data"]["entry"]["isBackfill"] is True

    r = _add(client, 70.0, _now() - timedelta(days=8))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "backfill_limit_exceeded"
    assert r.json()["error"]["details"]["daysBack"] == 8

    r = _add(client, 70.0, _now() + timedelta(days=1))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "backfill_limit_exceeded"


def test_weight_range_and_precision_are_validated(client, patient):
    assert _add(client, 29.9, _now()).status_code == 400
    assert _add(client, 250.1, _now()).status_code == 400
    r = _add(client, 72.55, _now())
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "validation_error"


def test_anomaly_flag_and_confirmation(client, db, patient):
    first = _add(client, 80.0, _now() - timedelta(days=1)).json()["data"]["entry"]

    r = _add(client, 84.0, _now())
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["entry"]["isOutlier"] is True
    warning = data["warnings"][0]
    assert warning["type"] == "anomaly_detected"
    assert warning["previousWeight"] == 80.0
    assert warning["change"] == 4.0

    outlier_id = data["entry"]["id"]
    r = client.post(f"/api/v1/weight/{outlier_id}/confirm", json={"confirmed": True})
    assert r.status_code == 200
    assert r.json()["data"]["entry"]["outlierConfirmed"] is True

    # unchanged confirmation is a no-op
    r = client.post(f"/api/v1/weight/{outlier_id}/confirm", json={"confirmed": True})
    assert r.status_code == 200
    db.expire_all()
    assert len(db.exec(select(Event).where(Event.event_type == "confirm_outlier")).all()) == 1

    r = client.post(f"/api/v1/weight/{first['id']}/confirm", json={"confirmed": True})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "not_outlier"


def test_list_entries_paginates_newest_first(client, patient):
    for days_back in (0, 1, 2):
        assert _add(client, 70.0 + days_back, _now() - timedelta(days=days_back)).status_code == 201

    r = client.get("/api/v1/weight", params={"limit": 2})
    assert r.status_code == 200
    page = r.json()["data"]
    assert [e["weight"] for e in page["entries"]] == [70.0, 71.0]
    assert page["pagination"]["hasMore"] is True
    cursor = page["pagination"]["nextCursor"]

    r = client.get("/api/v1/weight", params={"limit": 2, "cursor": cursor})
    page = r.json()["data"]
    assert [e["weight"] for e in page["entries"]] == [72.0]
    assert page["pagination"] == {"hasMore": False, "nextCursor": None}


def test_update_entry_reruns_anomaly_detection(client, db, patient):
    _add(client, 80.0, _now() - timedelta(days=1))
    entry = _add(client, 80.5, _now()).json()["data"]["entry"]

    r = client.patch(f"/api/v1/weight/{entry['id']}", json={"weight": 85.04})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["entry"]["weight"] == 85.0
    assert data["entry"]["isOutlier"] is True
    assert data["warnings"][0]["type"] == "anomaly_detected"

    r = client.patch(f"/api/v1/weight/{entry['id']}", json={"note": "waga kuchenna"})
    assert r.status_code == 200
    assert r.json()["data"]["entry"]["note"] == "waga kuchenna"
    assert r.json()["data"]["entry"]["weight"] == 85.0

    db.expire_all()
    edits = db.exec(select(Event).where(Event.event_type == "edit_weight")).all()
    assert len(edits) == 2
    assert edits[0].properties["before"]["weight"] == 80.5


def test_update_requires_a_field(client, patient):
    entry = _add(client, 80.0, _now()).json()["data"]["entry"]
    r = client.patch(f"/api/v1/weight/{entry['id']}", json={})
    assert r.status_code == 400


def test_edit_window_expired(client, patient):
    entry = _add(client, 80.0, _now() - timedelta(days=4)).json()["data"]["entry"]

    r = client.patch(f"/api/v1/weight/{entry['id']}", json={"note": "late"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "edit_window_expired"

    r = client.delete(f"/api/v1/weight/{entry['id']}")
    assert r.status_code == 400


def test_delete_entry(client, db, patient):
    entry = _add(client, 80.0, _now()).json()["data"]["entry"]
    r = client.delete(f"/api/v1/weight/{entry['id']}")
    assert r.status_code == 204

    db.expire_all()
    assert db.exec(select(WeightEntry)).all() == []
    assert len(db.exec(select(Event).where(Event.event_type == "delete_weight")).all()) == 1

    r = client.delete(f"/api/v1/weight/{entry['id']}")
    assert r.status_code == 404


def test_other_users_entry_is_not_found(client, db, make_user, patient):
    other = make_user(email="other@example.com")
    entry = WeightEntry(
        user_id=other.id,
        weight=Decimal("60.0"),
        measurement_date=_now(),
        source=WeightSource.patient,
        created_by=other.id,
    )
    db.add(entry)
    db.commit()

    r = client.patch(f"/api/v1/weight/{entry.id}", json={"note": "mine?"})
    assert r.status_code == 404
    r = client.get("/api/v1/weight")
    assert r.json()["data"]["entries"] == []


def test_dietitian_entry_is_read_only_for_patient(client, db, make_user, patient):
    dietitian = make_user(role=UserRole.dietitian, email="dietetyk@example.com")
    entry = WeightEntry(
        user_id=patient.id,
        weight=Decimal("60.0"),
        measurement_date=_now(),
        source=WeightSource.dietitian,
        created_by=dietitian.id,
    )
    db.add(entry)
    db.commit()

    r = client.patch(f"/api/v1/weight/{entry.id}", json={"note": "x"})
    assert r.status_code == 403
    assert r.json()["error"]["details"]["reason"] == "dietitian_entry"


def test_weight_routes_are_patient_only(client, make_user):
    dietitian = make_user(role=UserRole.dietitian, email="dietetyk@example.com")
    login(client, dietitian.email)
    r = client.get("/api/v1/weight")
    assert r.status_code == 403
    assert r.json()["error"]["details"]["reason"] == "forbidden_patient_role"

    client.cookies.clear()
    assert client.get("/api/v1/weight").status_code == 401
