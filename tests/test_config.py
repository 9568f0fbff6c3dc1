from __future__ import annotations

import pytest
from pydantic import ValidationError

from dietpanel.core.config import Settings


def test_secret_key_required_outside_local(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)

    with pytest.raises(ValidationError, match="SECRET_KEY"):
        Settings(_env_file=None, ENVIRONMENT="staging")

    configured = Settings(_env_file=None, ENVIRONMENT="staging", SECRET_KEY="k" * 32)
    assert configured.SECRET_KEY == "k" * 32


def test_local_environment_generates_secret_key(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    assert Settings(_env_file=None, ENVIRONMENT="local").SECRET_KEY


def test_changethis_placeholder_rejected_outside_local():
    with pytest.raises(ValidationError, match="changethis"):
        Settings(_env_file=None, ENVIRONMENT="production", SECRET_KEY="changethis")
