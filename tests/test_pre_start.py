from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from dietpanel.backend_pre_start import (
    SchemaNotReady,
    ensure_schema_current,
    head_revisions,
    wait_for_database,
)


@pytest.fixture()
def blank_engine():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    yield engine
    engine.dispose()


def _stamp(engine, *revisions: str) -> None:
    with engine.begin() as connection:
        connection.execute(
            text("CREATE TABLE alembic_version (version_num VARCHAR(32) NOT NULL PRIMARY KEY)")
        )
        for revision in revisions:
            connection.execute(
                text("INSERT INTO alembic_version (version_num) VALUES (:rev)"), {"rev": revision}
            )


def test_head_is_latest_migration():
    assert head_revisions() == {"dp002_reset_tokens_status"}


def test_unmigrated_database_is_rejected(blank_engine):
    wait_for_database(blank_engine)

    with pytest.raises(SchemaNotReady) as exc_info:
        ensure_schema_current(blank_engine)
    assert exc_info.value.current == set()
    assert exc_info.value.expected == {"dp002_reset_tokens_status"}
    assert "alembic upgrade head" in str(exc_info.value)


def test_database_behind_head_is_rejected(blank_engine):
    _stamp(blank_engine, "dp001_initial_schema")

    with pytest.raises(SchemaNotReady) as exc_info:
        ensure_schema_current(blank_engine)
    assert exc_info.value.current == {"dp001_initial_schema"}


def test_database_at_head_passes(blank_engine):
    _stamp(blank_engine, *head_revisions())
    ensure_schema_current(blank_engine)
