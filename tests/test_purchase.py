from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlmodel import select

from dietpanel.core.config import settings
from dietpanel.enums import TransactionStatus
from dietpanel.models import Event, PzkModuleAccess, Transaction
from tests.conftest import grant

INITIATE = "/api/v1/pzk/purchase/initiate"
CALLBACK = "/api/v1/pzk/purchase/callback"


def _transaction(db, transaction_id: str) -> Transaction:
    db.expire_all()
    return db.get(Transaction, uuid.UUID(transaction_id))


def _grants(db, user) -> list[PzkModuleAccess]:
    db.expire_all()
    return list(
        db.exec(select(PzkModuleAccess).where(PzkModuleAccess.user_id == user.id)).all()
    )


def _notify(client, transaction_id: str, status: str = "TRUE", amount: str = "299.00"):
    return client.post(
        CALLBACK,
        data={
            "id": "12345",
            "tr_id": "TR-1",
            "tr_status": status,
            "tr_amount": amount,
            "tr_crc": transaction_id,
        },
        headers={"X-JWS-Signature": "header..signature"},
    )


# ============================================================
# Initiate
# ============================================================


def test_initiate_module_purchase(client, db, pzk_enabled, prices, patient, tpay):
    r = client.post(INITIATE, json={"module": 2})
    assert r.status_code == 200, r.text
    assert r.headers["cache-control"] == "no-store"
    data = r.json()["data"]
    assert data["redirectUrl"] == "https://secure.sandbox.tpay.com/?title=TR-1"

    tx = _transaction(db, data["transactionId"])
    assert tx.status == TransactionStatus.pending
    assert tx.item == "PZK_MODULE_2"
    assert Decimal(tx.amount) == Decimal("299.00")
    assert tx.tpay_transaction_id == "TR-1"
    assert tx.payer_email == patient.email

    call = tpay.created[0]
    assert call["crc"] == data["transactionId"]
    assert call["amount"] == Decimal("299.00")
    assert call["description"] == "PZK Moduł 2"
    assert call["payer_name"] == "Anna Kowalska"
    assert call["notification_url"] == (
        f"{settings.SITE_URL.rstrip('/')}{settings.API_V1_STR}/pzk/purchase/callback"
    )
    assert f"transaction={data['transactionId']}" in call["return_url"]

    db.expire_all()
    events = db.exec(select(Event).where(Event.event_type == "pzk_purchase_initiated")).all()
    assert len(events) == 1


def test_initiate_bundle(client, db, pzk_enabled, prices, patient, tpay):
    grant(db, patient, 1)
    r = client.post(INITIATE, json={"bundle": "ALL"})
    assert r.status_code == 200
    tx = _transaction(db, r.json()["data"]["transactionId"])
    assert tx.item == "PZK_BUNDLE_ALL"
    assert Decimal(tx.amount) == Decimal("699.00")


def test_initiate_body_must_name_exactly_one_item(client, pzk_enabled, prices, patient):
    assert client.post(INITIATE, json={}).status_code == 400
    assert client.post(INITIATE, json={"module": 2, "bundle": "ALL"}).status_code == 400
    assert client.post(INITIATE, json={"module": 4}).status_code == 400
    assert client.post(INITIATE, json={"bundle": "SOME"}).status_code == 400


def test_initiate_refused_with_active_access(client, db, pzk_enabled, prices, patient):
    grant(db, patient, 2)
    r = client.post(INITIATE, json={"module": 2})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "already_has_access"

    grant(db, patient, 1)
    grant(db, patient, 3)
    r = client.post(INITIATE, json={"bundle": "ALL"})
    assert r.status_code == 409


def test_initiate_refused_while_pending(client, pzk_enabled, prices, patient):
    assert client.post(INITIATE, json={"module": 1}).status_code == 200
    r = client.post(INITIATE, json={"module": 1})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "pending_transaction"

    # a different item is still allowed
    assert client.post(INITIATE, json={"module": 3}).status_code == 200


def test_initiate_provider_failure_marks_transaction_failed(
    client, db, pzk_enabled, prices, patient, tpay
):
    tpay.fail = True
    r = client.post(INITIATE, json={"module": 1})
    assert r.status_code == 502
    assert r.json()["error"]["code"] == "external_service_error"

    db.expire_all()
    tx = db.exec(select(Transaction)).one()
    assert tx.status == TransactionStatus.failed

    # the failed row does not block a retry
    tpay.fail = False
    assert client.post(INITIATE, json={"module": 1}).status_code == 200


def test_initiate_without_configured_price_is_500(client, db, pzk_enabled, patient, monkeypatch):
    monkeypatch.setattr(settings, "PZK_MODULE_1_PRICE", None)
    r = client.post(INITIATE, json={"module": 1})
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "internal_error"
    db.expire_all()
    assert db.exec(select(Transaction)).all() == []


# ============================================================
# Webhook
# ============================================================


def test_callback_success_grants_twelve_months(client, db, pzk_enabled, prices, patient, mailer):
    transaction_id = client.post(INITIATE, json={"module": 2}).json()["data"]["transactionId"]

    r = _notify(client, transaction_id)
    assert r.status_code == 200
    assert r.text == "TRUE"

    tx = _transaction(db, transaction_id)
    assert tx.status == TransactionStatus.success
    grants = _grants(db, patient)
    assert [g.module for g in grants] == [2]
    expires_at = grants[0].expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    assert expires_at > datetime.now(timezone.utc) + timedelta(days=360)

    assert len(mailer.sent) == 1
    assert mailer.sent[0]["to"] == patient.email

    access = client.get("/api/v1/pzk/access").json()["data"]
    assert access["activeModules"] == [2]


def test_callback_bundle_grants_every_module(client, db, pzk_enabled, prices, patient):
    transaction_id = client.post(INITIATE, json={"bundle": "ALL"}).json()["data"]["transactionId"]
    assert _notify(client, transaction_id, amount="699.00").text == "TRUE"
    assert sorted(g.module for g in _grants(db, patient)) == [1, 2, 3]


def test_callback_replay_is_idempotent(client, db, pzk_enabled, prices, patient, mailer):
    transaction_id = client.post(INITIATE, json={"module": 1}).json()["data"]["transactionId"]

    assert _notify(client, transaction_id).text == "TRUE"
    r = _notify(client, transaction_id)
    assert r.status_code == 200
    assert r.text == "TRUE"

    assert len(_grants(db, patient)) == 1
    assert len(mailer.sent) == 1

    # a late failure notice does not undo a paid transaction
    assert _notify(client, transaction_id, status="FALSE").text == "TRUE"
    assert _transaction(db, transaction_id).status == TransactionStatus.success


def test_callback_failed_payment(client, db, pzk_enabled, prices, patient, mailer):
    transaction_id = client.post(INITIATE, json={"module": 1}).json()["data"]["transactionId"]

    r = _notify(client, transaction_id, status="FALSE")
    assert r.status_code == 200
    assert _transaction(db, transaction_id).status == TransactionStatus.failed
    assert _grants(db, patient) == []
    assert mailer.sent == []


def test_callback_rejects_bad_signature(client, db, pzk_enabled, prices, patient, tpay):
    transaction_id = client.post(INITIATE, json={"module": 1}).json()["data"]["transactionId"]
    tpay.signature_valid = False

    r = _notify(client, transaction_id)
    assert r.status_code == 401
    assert r.text == "FALSE"
    assert _transaction(db, transaction_id).status == TransactionStatus.pending


def test_callback_missing_fields_is_400(client):
    r = client.post(CALLBACK, data={"tr_id": "TR-1", "tr_status": "TRUE"})
    assert r.status_code == 400
    assert r.text == "FALSE"


def test_callback_unknown_transaction_is_500(client):
    assert _notify(client, str(uuid.uuid4())).status_code == 500
    r = _notify(client, "not-a-uuid")
    assert r.status_code == 500
    assert r.text == "FALSE"


def test_callback_oversized_body_is_413(client):
    body = "tr_id=TR-1&tr_crc=" + "x" * settings.TPAY_WEBHOOK_MAX_BODY_BYTES
    r = client.post(
        CALLBACK,
        content=body,
        headers={"content-type": "application/x-www-form-urlencoded"},
    )
    assert r.status_code == 413
    assert r.text == "FALSE"


def test_callback_streamed_body_without_length_is_413(client):
    chunk = b"x" * 1024
    chunks = settings.TPAY_WEBHOOK_MAX_BODY_BYTES // len(chunk) + 2

    def body():
        yield b"tr_id=TR-1&tr_crc="
        for _ in range(chunks):
            yield chunk

    r = client.post(
        CALLBACK,
        content=body(),
        headers={"content-type": "application/x-www-form-urlencoded"},
    )
    assert "content-length" not in r.request.headers
    assert r.status_code == 413
    assert r.text == "FALSE"
