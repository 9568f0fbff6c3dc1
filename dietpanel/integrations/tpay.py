"""
Tpay payment gateway client.

Covers two calls:
- create_transaction: POST /transactions (Basic auth), returns the provider
  transaction id and the payment form URL
- verify_notification: checks a webhook delivery, either the JWS in the
  ``X-JWS-Signature`` header (RS256, certificate from the header's ``x5u``)
  or, for legacy deliveries without a JWS, the ``md5sum`` form field

Webhook certificates are cached per URL; the download is bounded in time and
size so a hostile ``x5u`` cannot stall or flood the worker.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from urllib.parse import urlsplit

import httpx
import jwt
from cryptography import x509

from dietpanel.core.config import Settings
from dietpanel.utils.purchase_url import with_status

logger = logging.getLogger(__name__)

_TRANSACTIONS_PATH = "/transactions"


class TpayError(Exception):
    """Provider call failed or returned an unusable response."""


@dataclass(frozen=True)
class TpayTransaction:
    transaction_id: str
    payment_url: str


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


class TpayClient:
    def __init__(self, config: Settings, *, http: httpx.Client | None = None) -> None:
        self.client_id = config.TPAY_CLIENT_ID or ""
        self.client_secret = config.TPAY_CLIENT_SECRET or ""
        self.base_url = config.tpay_api_base_url
        self.cert_domain = config.tpay_cert_domain
        self.security_code = config.TPAY_SECURITY_CODE
        self.cert_cache_ttl = config.TPAY_CERT_CACHE_TTL_SECONDS
        self.cert_fetch_timeout = config.TPAY_CERT_FETCH_TIMEOUT_SECONDS
        self.max_cert_bytes = config.TPAY_MAX_CERT_BYTES
        self._http = http or httpx.Client(timeout=10.0)
        self._cert_cache: dict[str, tuple[Any, float]] = {}
        self._cert_lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def close(self) -> None:
        self._http.close()

    def create_transaction(
        self,
        *,
        amount: Decimal,
        description: str,
        crc: str,
        payer_email: str,
        payer_name: str | None,
        return_url: str,
        notification_url: str,
    ) -> TpayTransaction:
        """
        Register a payment with Tpay.

        ``crc`` is our transaction id; Tpay keeps it as ``hiddenDescription``
        and echoes it back as ``tr_crc`` in the webhook.

        Raises:
            TpayError: credentials missing, HTTP failure or incomplete response
        """
        if not self.configured:
            raise TpayError("TPAY_CLIENT_ID / TPAY_CLIENT_SECRET not configured")

        payer: dict[str, str] = {"email": payer_email}
        if payer_name:
            payer["name"] = payer_name
        payload = {
            "amount": float(amount),
            "description": description,
            "hiddenDescription": crc,
            "payer": payer,
            "callbacks": {
                "notification": {"url": notification_url},
                "payerUrls": {
                    "success": with_status(return_url, "success"),
                    "error": with_status(return_url, "error"),
                },
            },
        }

        try:
            resp = self._http.post(
                f"{self.base_url}{_TRANSACTIONS_PATH}",
                json=payload,
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as e:
            raise TpayError(f"Tpay request failed: {e}") from e

        if resp.status_code >= 400:
            raise TpayError(f"Tpay API error: {resp.status_code} {resp.text[:500]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise TpayError("Tpay API returned non-JSON response") from e

        transaction_id = data.get("transactionId") or data.get("tr_id")
        payment_url = data.get("transactionPaymentUrl") or data.get("payment_url")
        if not transaction_id or not payment_url:
            raise TpayError("Tpay API response missing transactionId or payment URL")
        return TpayTransaction(transaction_id=str(transaction_id), payment_url=str(payment_url))

    def verify_notification(
        self, *, jws_signature: str | None, raw_body: bytes, form: dict[str, str]
    ) -> bool:
        """
        Check a webhook delivery.

        A JWS header always wins. Without one, the legacy ``md5sum`` check is
        used when TPAY_SECURITY_CODE is configured; otherwise the delivery is
        rejected.
        """
        if jws_signature:
            return self.verify_jws(jws_signature, raw_body)
        if self.security_code:
            return self.verify_md5(form)
        logger.error("Webhook without X-JWS-Signature and no legacy security code configured")
        return False

    def verify_md5(self, form: dict[str, str]) -> bool:
        """Legacy check: md5(id + tr_id + tr_amount + tr_crc + security_code) == md5sum."""
        received = form.get("md5sum")
        if not received or not self.security_code:
            return False
        raw = "".join(
            [
                form.get("id", ""),
                form.get("tr_id", ""),
                form.get("tr_amount", ""),
                form.get("tr_crc", ""),
                self.security_code,
            ]
        )
        expected = hashlib.md5(raw.encode()).hexdigest()
        return hmac.compare_digest(expected, received.lower())

    def verify_jws(self, jws_signature: str, raw_body: bytes) -> bool:
        """
        Verify an RS256 JWS over the raw request body.

        Both forms are accepted: detached (``header..signature``, payload is the
        body) and attached (payload segment must equal base64url(body)).
        """
        parts = jws_signature.split(".")
        if len(parts) != 3:
            logger.error("Invalid JWS format: %d segments", len(parts))
            return False
        header_b64, payload_b64, signature_b64 = parts

        body_b64 = _b64url(raw_body)
        token = f"{header_b64}.{body_b64}.{signature_b64}"
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError:
            logger.error("Unreadable JWS header")
            return False

        cert_url = header.get("x5u")
        if not cert_url:
            logger.error("JWS header without x5u")
            return False
        parsed = urlsplit(cert_url)
        if parsed.scheme != "https" or parsed.hostname != self.cert_domain:
            logger.error("Certificate URL outside %s: %s", self.cert_domain, cert_url)
            return False

        if payload_b64 and payload_b64 != body_b64:
            logger.error("Attached JWS payload does not match request body")
            return False

        try:
            public_key = self._public_key(cert_url)
        except TpayError as e:
            logger.error("Certificate unavailable: %s", e)
            return False

        try:
            jwt.PyJWS().decode(token, public_key, algorithms=["RS256"])
        except jwt.PyJWTError as e:
            logger.error("JWS signature verification failed: %s", e)
            return False
        return True

    def _public_key(self, cert_url: str) -> Any:
        now = time.monotonic()
        with self._cert_lock:
            cached = self._cert_cache.get(cert_url)
            if cached and cached[1] > now:
                return cached[0]

            pem = self._download_cert(cert_url)
            try:
                key = x509.load_pem_x509_certificate(pem).public_key()
            except ValueError as e:
                raise TpayError(f"Invalid certificate at {cert_url}") from e
            self._cert_cache[cert_url] = (key, now + self.cert_cache_ttl)
            return key

    def _download_cert(self, cert_url: str) -> bytes:
        logger.info("Downloading Tpay certificate (cache miss): %s", cert_url)
        try:
            with self._http.stream("GET", cert_url, timeout=self.cert_fetch_timeout) as resp:
                if resp.status_code != 200:
                    raise TpayError(f"Certificate download failed: {resp.status_code}")
                declared = resp.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_cert_bytes:
                    raise TpayError(f"Certificate too large: {declared} bytes")
                chunks: list[bytes] = []
                total = 0
                for chunk in resp.iter_bytes():
                    total += len(chunk)
                    if total > self.max_cert_bytes:
                        raise TpayError("Certificate too large (streamed)")
                    chunks.append(chunk)
        except httpx.TimeoutException as e:
            raise TpayError(f"Certificate fetch timeout after {self.cert_fetch_timeout}s") from e
        except httpx.HTTPError as e:
            raise TpayError(f"Certificate fetch failed: {e}") from e
        return b"".join(chunks)
