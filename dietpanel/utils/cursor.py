"""
Opaque keyset cursor for review pagination.

Encoded as base64url (no padding) JSON ``{"timestamp": ISO-8601, "id": uuid}``.
"""
import base64
import binascii
import json
import uuid
from datetime import datetime, timezone


def encode_cursor(timestamp: datetime, row_id: uuid.UUID) -> str:
    payload = json.dumps(
        {"timestamp": timestamp.astimezone(timezone.utc).isoformat(), "id": str(row_id)},
        separators=(",", ":"),
    )
    return base64.urlsafe_b64encode(payload.encode()).decode().rstrip("=")


def decode_cursor(cursor: str | None) -> tuple[datetime, uuid.UUID] | None:
    """Decode a cursor; anything malformed decodes to None (start from the first page)."""
    if not cursor:
        return None
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()).decode())
        ts = datetime.fromisoformat(data["timestamp"])
        row_id = uuid.UUID(str(data["id"]))
    except (binascii.Error, UnicodeDecodeError, ValueError, KeyError, TypeError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts, row_id
