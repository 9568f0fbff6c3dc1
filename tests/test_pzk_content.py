from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlmodel import select

from dietpanel.core.config import settings
from dietpanel.crud import pzk_material, pzk_review
from dietpanel.enums import MaterialStatus
from dietpanel.models import Event, PzkNote
from tests.conftest import grant


def _presign(client, material_id, pdf_id, json=None):
    return client.post(f"/api/v1/pzk/materials/{material_id}/pdfs/{pdf_id}/presign", json=json)


def _events(db, event_type: str) -> list[Event]:
    db.expire_all()
    return list(db.exec(select(Event).where(Event.event_type == event_type)).all())


# ============================================================
# Presign
# ============================================================


def test_presign_returns_short_lived_url(client, db, pzk_enabled, patient, make_material, presigner):
    grant(db, patient, 1)
    material, pdf = make_material(module=1)

    r = _presign(client, material.id, pdf.id)
    assert r.status_code == 200, r.text
    assert r.headers["cache-control"] == "no-store"
    data = r.json()["data"]
    assert data["ttlSeconds"] == 60
    assert data["url"] == f"https://storage.test/{pdf.object_key}?X-Amz-Expires=60"
    assert data["expiresAt"]

    call = presigner.calls[0]
    assert call["object_key"] == pdf.object_key
    assert call["expires_in"] == 60
    assert call["content_disposition"] == 'attachment; filename="Talerz.pdf"'
    assert call["content_type"] == "application/pdf"

    success = _events(db, "pzk_pdf_presign_success")
    assert len(success) == 1
    assert success[0].properties["pdfId"] == str(pdf.id)
    assert success[0].properties["ttlSeconds"] == 60


def test_presign_accepts_only_default_ttl(client, db, pzk_enabled, patient, make_material):
    grant(db, patient, 1)
    material, pdf = make_material(module=1)

    assert _presign(client, material.id, pdf.id, json={"ttlSeconds": 60}).status_code == 200
    r = _presign(client, material.id, pdf.id, json={"ttlSeconds": 120})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "validation_error"


def test_presign_forbidden_without_access(client, db, pzk_enabled, patient, make_material, presigner):
    material, pdf = make_material(module=2)

    r = _presign(client, material.id, pdf.id)
    assert r.status_code == 403
    assert r.json()["error"]["details"]["reason"] == "no_module_access"
    assert presigner.calls == []
    assert len(_events(db, "pzk_pdf_presign_forbidden")) == 1


def test_presign_publish_soon_is_forbidden_even_with_access(
    client, db, pzk_enabled, patient, make_material
):
    grant(db, patient, 1)
    material, pdf = make_material(module=1, status=MaterialStatus.publish_soon)

    r = _presign(client, material.id, pdf.id)
    assert r.status_code == 403
    assert r.json()["error"]["details"]["reason"] == "publish_soon"


def test_presign_hidden_material_is_not_found(client, db, pzk_enabled, patient, make_material):
    grant(db, patient, 1)
    draft, pdf = make_material(module=1, status=MaterialStatus.draft)

    assert _presign(client, draft.id, pdf.id).status_code == 404
    assert _presign(client, uuid.uuid4(), pdf.id).status_code == 404
    reasons = [e.properties["reason"] for e in _events(db, "pzk_pdf_presign_error")]
    assert reasons == ["material_not_found", "material_not_found"]


def test_presign_pdf_must_belong_to_material(client, db, pzk_enabled, patient, make_material, presigner):
    grant(db, patient, 1)
    material_a, _ = make_material(module=1, title="A")
    _, pdf_b = make_material(module=1, title="B", order=2)

    r = _presign(client, material_a.id, pdf_b.id)
    assert r.status_code == 404
    assert presigner.calls == []
    assert pzk_material.find_pdf_by_material_and_pdf_id(
        session=db, material_id=material_a.id, pdf_id=pdf_b.id
    ) is None


def test_presign_storage_failure_is_500(client, db, pzk_enabled, patient, make_material, presigner):
    grant(db, patient, 1)
    material, pdf = make_material(module=1)
    presigner.fail = True

    r = _presign(client, material.id, pdf.id)
    assert r.status_code == 500
    assert r.headers["cache-control"] == "no-store"
    assert r.json()["error"]["code"] == "internal_error"
    errors = _events(db, "pzk_pdf_presign_error")
    assert errors[0].properties["reason"] == "storage_error"


# ============================================================
# Notes
# ============================================================


def test_note_lifecycle(client, db, pzk_enabled, patient, make_material):
    grant(db, patient, 1)
    material, _ = make_material(module=1)
    url = f"/api/v1/pzk/materials/{material.id}/note"

    r = client.get(url)
    assert r.status_code == 200
    assert r.json()["data"] is None

    r = client.put(url, json={"content": "  Pić więcej wody  "})
    assert r.status_code == 200
    assert r.json()["data"]["content"] == "Pić więcej wody"

    r = client.put(url, json={"content": "Mniej cukru"})
    assert r.json()["data"]["content"] == "Mniej cukru"
    db.expire_all()
    assert len(db.exec(select(PzkNote)).all()) == 1

    detail = client.get(f"/api/v1/pzk/materials/{material.id}").json()["data"]
    assert detail["note"]["content"] == "Mniej cukru"

    r = client.delete(url)
    assert r.status_code == 204
    assert r.headers["cache-control"] == "no-store"
    assert client.get(url).json()["data"] is None

    # deleting a missing note is fine
    assert client.delete(url).status_code == 204


def test_note_content_limits(client, db, pzk_enabled, patient, make_material):
    grant(db, patient, 1)
    material, _ = make_material(module=1)
    url = f"/api/v1/pzk/materials/{material.id}/note"

    assert client.put(url, json={"content": "x" * 10_000}).status_code == 200
    r = client.put(url, json={"content": "x" * 10_001})
    assert r.status_code == 400
    assert client.put(url, json={"content": "   "}).status_code == 400


def test_note_requires_access_and_published_material(client, db, pzk_enabled, patient, make_material):
    locked, _ = make_material(module=2)
    r = client.put(f"/api/v1/pzk/materials/{locked.id}/note", json={"content": "x"})
    assert r.status_code == 403
    assert r.json()["error"]["details"]["reason"] == "no_module_access"

    grant(db, patient, 2)
    soon, _ = make_material(module=2, status=MaterialStatus.publish_soon, order=2)
    r = client.put(f"/api/v1/pzk/materials/{soon.id}/note", json={"content": "x"})
    assert r.status_code == 404


# ============================================================
# Reviews
# ============================================================


def _seed_reviews(db, make_user, count: int = 5) -> list:
    base = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    reviews = []
    for i in range(count):
        user = make_user(email=f"reviewer{i}@example.com", first_name=f"Imię{i}")
        # two reviews share a timestamp to exercise the id tie-breaker
        when = base + timedelta(minutes=min(i, count - 2))
        reviews.append(
            pzk_review.upsert(session=db, user_id=user.id, rating=5, content=f"Opinia {i}", now=when)
        )
    return reviews


def _collect(client, url: str, **params) -> list[str]:
    ids: list[str] = []
    cursor = None
    for _ in range(10):
        query = dict(params, limit=2)
        if cursor:
            query["cursor"] = cursor
        r = client.get(url, params=query)
        assert r.status_code == 200, r.text
        page = r.json()["data"]
        ids.extend(item["id"] for item in page["items"])
        cursor = page["nextCursor"]
        if cursor is None:
            break
    return ids


def test_review_pages_concatenate_without_duplicates(client, db, make_user, pzk_enabled, patient):
    grant(db, patient, 1)
    reviews = _seed_reviews(db, make_user)

    expected = [
        str(r.id)
        for r in sorted(reviews, key=lambda r: (r.created_at, r.id), reverse=True)
    ]
    assert _collect(client, "/api/v1/pzk/reviews") == expected

    # bump one review's update time to the top of the updatedAt sort
    first = reviews[0]
    pzk_review.upsert(
        session=db,
        user_id=first.user_id,
        rating=4,
        content="Zmieniona",
        now=datetime(2025, 4, 1, tzinfo=timezone.utc),
    )
    by_update = _collect(client, "/api/v1/pzk/reviews", sort="updatedAtDesc")
    assert by_update[0] == str(first.id)
    assert sorted(by_update) == sorted(expected)


def test_review_list_shows_author_first_name(client, db, make_user, pzk_enabled, patient):
    grant(db, patient, 1)
    _seed_reviews(db, make_user, count=1)
    item = client.get("/api/v1/pzk/reviews").json()["data"]["items"][0]
    assert item["author"] == {"firstName": "Imię0"}


def test_garbage_cursor_restarts_from_first_page(client, db, make_user, pzk_enabled, patient):
    grant(db, patient, 1)
    _seed_reviews(db, make_user, count=3)
    r = client.get("/api/v1/pzk/reviews", params={"cursor": "@@@", "limit": 2})
    assert r.status_code == 200
    assert len(r.json()["data"]["items"]) == 2


def test_my_review_upsert_and_delete(client, db, pzk_enabled, patient):
    grant(db, patient, 3)

    assert client.get("/api/v1/pzk/reviews/me").json()["data"] is None

    r = client.put("/api/v1/pzk/reviews/me", json={"rating": 6, "content": "Świetny program"})
    assert r.status_code == 200
    created = r.json()["data"]
    assert created["rating"] == 6

    r = client.put("/api/v1/pzk/reviews/me", json={"rating": 5, "content": "Bardzo dobry"})
    updated = r.json()["data"]
    assert updated["id"] == created["id"]
    assert updated["rating"] == 5

    assert client.get("/api/v1/pzk/reviews/me").json()["data"]["content"] == "Bardzo dobry"

    assert client.delete("/api/v1/pzk/reviews/me").status_code == 204
    r = client.delete("/api/v1/pzk/reviews/me")
    assert r.status_code == 404


def test_review_validation(client, db, pzk_enabled, patient):
    grant(db, patient, 1)
    assert client.put("/api/v1/pzk/reviews/me", json={"rating": 7, "content": "x"}).status_code == 400
    assert client.put("/api/v1/pzk/reviews/me", json={"rating": 0, "content": "x"}).status_code == 400
    assert client.put("/api/v1/pzk/reviews/me", json={"rating": 3, "content": " "}).status_code == 400


def test_reviews_require_active_access(client, pzk_enabled, patient):
    for method, url, body in (
        ("GET", "/api/v1/pzk/reviews", None),
        ("GET", "/api/v1/pzk/reviews/me", None),
        ("PUT", "/api/v1/pzk/reviews/me", {"rating": 5, "content": "x"}),
        ("DELETE", "/api/v1/pzk/reviews/me", None),
    ):
        r = client.request(method, url, json=body)
        assert r.status_code == 403, url
        assert r.json()["error"]["details"]["reason"] == "no_active_access"


def test_public_reviews_are_anonymous_and_cacheable(client, db, make_user, pzk_enabled):
    _seed_reviews(db, make_user, count=2)

    r = client.get("/api/v1/pzk/reviews/public")
    assert r.status_code == 200
    assert r.headers["cache-control"] == "public, max-age=300"
    items = r.json()["data"]["items"]
    assert len(items) == 2
    assert all(item["author"] == {"firstName": None} for item in items)


def test_public_reviews_hidden_when_flag_off(client, monkeypatch):
    monkeypatch.setattr(settings, "FF_PZK", "false")
    assert client.get("/api/v1/pzk/reviews/public").status_code == 404
