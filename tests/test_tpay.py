from __future__ import annotations

import base64
import hashlib
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import jwt
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from dietpanel.core.config import settings
from dietpanel.integrations.tpay import TpayClient, TpayError

CERT_URL = "https://secure.sandbox.tpay.com/x509/notifications-jws.pem"
BODY = b"id=12345&tr_id=TR-1&tr_status=TRUE&tr_amount=299.00&tr_crc=abc"


@pytest.fixture(scope="module")
def signing_key():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "secure.sandbox.tpay.com")])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return key, cert.public_bytes(serialization.Encoding.PEM)


def _config(**overrides):
    values = {
        "TPAY_CLIENT_ID": "client",
        "TPAY_CLIENT_SECRET": "secret",
        "TPAY_ENVIRONMENT": "sandbox",
        "TPAY_CERT_DOMAIN": None,
        "TPAY_SECURITY_CODE": None,
    }
    values.update(overrides)
    return settings.model_copy(update=values)


def _client(handler, **overrides) -> TpayClient:
    return TpayClient(_config(**overrides), http=httpx.Client(transport=httpx.MockTransport(handler)))


def _cert_server(pem: bytes, hits: list):
    def handler(request: httpx.Request) -> httpx.Response:
        hits.append(str(request.url))
        assert str(request.url) == CERT_URL
        return httpx.Response(200, content=pem)

    return handler


def _sign(key, body: bytes, x5u: str = CERT_URL) -> str:
    return jwt.PyJWS().encode(body, key, algorithm="RS256", headers={"x5u": x5u})


def _detached(token: str) -> str:
    header, _, signature = token.split(".")
    return f"{header}..{signature}"


def test_verify_detached_jws_and_cache_certificate(signing_key):
    key, pem = signing_key
    hits: list = []
    client = _client(_cert_server(pem, hits))

    signature = _detached(_sign(key, BODY))
    assert client.verify_notification(jws_signature=signature, raw_body=BODY, form={}) is True
    assert client.verify_notification(jws_signature=signature, raw_body=BODY, form={}) is True
    assert len(hits) == 1


def test_verify_attached_jws(signing_key):
    key, pem = signing_key
    client = _client(_cert_server(pem, []))
    assert client.verify_jws(_sign(key, BODY), BODY) is True


def test_tampered_body_is_rejected(signing_key):
    key, pem = signing_key
    client = _client(_cert_server(pem, []))
    tampered = BODY.replace(b"299.00", b"1.00")

    assert client.verify_jws(_detached(_sign(key, BODY)), tampered) is False
    # attached payload no longer matches the body
    assert client.verify_jws(_sign(key, BODY), tampered) is False


def test_certificate_outside_tpay_domain_is_rejected(signing_key):
    key, pem = signing_key
    hits: list = []
    client = _client(_cert_server(pem, hits))

    for x5u in ("https://evil.example.com/cert.pem", "http://secure.sandbox.tpay.com/cert.pem"):
        signature = _detached(_sign(key, BODY, x5u=x5u))
        assert client.verify_jws(signature, BODY) is False
    assert hits == []


def test_oversized_certificate_is_rejected(signing_key):
    key, _ = signing_key
    client = _client(lambda request: httpx.Response(200, content=b"x" * (settings.TPAY_MAX_CERT_BYTES + 1)))
    assert client.verify_jws(_detached(_sign(key, BODY)), BODY) is False


def test_malformed_signature_is_rejected(signing_key):
    client = _client(lambda request: httpx.Response(404))
    assert client.verify_jws("not-a-jws", BODY) is False
    assert client.verify_jws("a.b", BODY) is False


def test_legacy_md5_notification():
    client = _client(lambda request: httpx.Response(404), TPAY_SECURITY_CODE="kod")
    form = {"id": "12345", "tr_id": "TR-1", "tr_amount": "299.00", "tr_crc": "abc"}
    form["md5sum"] = hashlib.md5(b"12345TR-1299.00abckod").hexdigest()

    assert client.verify_notification(jws_signature=None, raw_body=BODY, form=form) is True
    form["tr_amount"] = "1.00"
    assert client.verify_notification(jws_signature=None, raw_body=BODY, form=form) is False


def test_notification_without_jws_or_security_code_is_rejected():
    client = _client(lambda request: httpx.Response(404))
    assert client.verify_notification(jws_signature=None, raw_body=BODY, form={"md5sum": "x"}) is False


def test_create_transaction():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "transactionId": "ta_123",
                "transactionPaymentUrl": "https://secure.sandbox.tpay.com/?title=ta_123",
            },
        )

    client = _client(handler)
    result = client.create_transaction(
        amount=Decimal("299.00"),
        description="PZK Moduł 1",
        crc="6f1c",
        payer_email="ola@example.com",
        payer_name="Ola Nowak",
        return_url="https://app.test/pzk/platnosc/sukces?transaction=6f1c",
        notification_url="https://app.test/api/v1/pzk/purchase/callback",
    )
    assert result.transaction_id == "ta_123"
    assert result.payment_url.endswith("title=ta_123")

    request = seen[0]
    assert str(request.url) == "https://openapi.sandbox.tpay.com/transactions"
    expected_auth = base64.b64encode(b"client:secret").decode()
    assert request.headers["authorization"] == f"Basic {expected_auth}"
    payload = json.loads(request.content)
    assert payload["amount"] == 299.0
    assert payload["hiddenDescription"] == "6f1c"
    assert payload["payer"] == {"email": "ola@example.com", "name": "Ola Nowak"}
    assert payload["callbacks"]["payerUrls"]["success"].endswith("transaction=6f1c&status=success")


def test_create_transaction_errors():
    client = _client(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(TpayError):
        client.create_transaction(
            amount=Decimal("1.00"),
            description="x",
            crc="c",
            payer_email="a@example.com",
            payer_name=None,
            return_url="https://app.test/ok",
            notification_url="https://app.test/cb",
        )

    client = _client(lambda request: httpx.Response(200, json={"transactionId": "x"}))
    with pytest.raises(TpayError):
        client.create_transaction(
            amount=Decimal("1.00"),
            description="x",
            crc="c",
            payer_email="a@example.com",
            payer_name=None,
            return_url="https://app.test/ok",
            notification_url="https://app.test/cb",
        )

    unconfigured = _client(lambda request: httpx.Response(200), TPAY_CLIENT_ID=None)
    assert unconfigured.configured is False
    with pytest.raises(TpayError):
        unconfigured.create_transaction(
            amount=Decimal("1.00"),
            description="x",
            crc="c",
            payer_email="a@example.com",
            payer_name=None,
            return_url="https://app.test/ok",
            notification_url="https://app.test/cb",
        )
