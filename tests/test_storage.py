from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from dietpanel.core.config import settings
from dietpanel.integrations.storage import (
    OssPresigner,
    Presigner,
    S3Presigner,
    create_presigner,
)
from dietpanel.utils.filenames import content_disposition


def _config(**overrides):
    values = {
        "OBJECT_STORAGE_PROVIDER": "r2",
        "OBJECT_STORAGE_BUCKET": "pzk-materials",
        "OBJECT_STORAGE_ACCESS_KEY_ID": "key-id",
        "OBJECT_STORAGE_SECRET_ACCESS_KEY": "key-secret",
        "OBJECT_STORAGE_ENDPOINT": "https://account.r2.cloudflarestorage.com",
    }
    values.update(overrides)
    return settings.model_copy(update=values)


def test_unconfigured_storage_has_no_presigner():
    assert create_presigner(_config(OBJECT_STORAGE_BUCKET=None)) is None
    assert create_presigner(_config(OBJECT_STORAGE_ENDPOINT=None)) is None


def test_r2_presigned_url():
    presigner = create_presigner(_config())
    assert isinstance(presigner, S3Presigner)

    url = presigner.presign_get(
        "pzk/module-1/plan.pdf",
        expires_in=60,
        content_disposition=content_disposition("Plan.pdf"),
        content_type="application/pdf",
    )
    parts = urlsplit(url)
    assert parts.path == "/pzk-materials/pzk/module-1/plan.pdf"
    query = parse_qs(parts.query)
    assert query["X-Amz-Expires"] == ["60"]
    assert query["response-content-disposition"] == ['attachment; filename="Plan.pdf"']
    assert query["response-content-type"] == ["application/pdf"]


def test_oss_presigned_url():
    presigner = create_presigner(
        _config(OBJECT_STORAGE_PROVIDER="oss", OBJECT_STORAGE_ENDPOINT="oss-eu-central-1.aliyuncs.com")
    )
    assert isinstance(presigner, OssPresigner)

    url = presigner.presign_get(
        "pzk/module-2/plan.pdf",
        expires_in=60,
        content_disposition=content_disposition("Plan.pdf"),
        content_type="application/pdf",
    )
    assert url.startswith("https://pzk-materials.oss-eu-central-1.aliyuncs.com/pzk/module-2/plan.pdf?")
    query = parse_qs(urlsplit(url).query)
    assert "Signature" in query
    assert query["response-content-type"] == ["application/pdf"]


def test_presigner_must_implement_presign_get():
    class Incomplete(Presigner):
        pass

    with pytest.raises(TypeError):
        Incomplete()
