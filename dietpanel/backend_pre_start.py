"""
Start-up checks for the API and the seed script.

1. ``wait_for_database``: retry until Postgres accepts a query (the database
   container may still be starting under Docker Compose)
2. ``ensure_schema_current``: refuse to go on while the database is behind
   the Alembic head, so ``initial_data`` never seeds a half-migrated schema

Usage:
    python -m dietpanel.backend_pre_start          # wait only, before migrations
    python -m dietpanel.backend_pre_start --schema # wait and require the head
"""
import argparse
import logging
from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import Engine
from sqlmodel import Session, select
from tenacity import (
    after_log,
    before_log,
    retry,
    stop_after_attempt,
    wait_fixed,
)

from dietpanel.core.db import engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "alembic"

max_tries = 60 * 5  # 5 minutes
wait_seconds = 1


class SchemaNotReady(Exception):
    def __init__(self, current: set[str], expected: set[str]) -> None:
        super().__init__(
            f"Database schema at {sorted(current) or 'no revision'}, "
            f"expected {sorted(expected)}; run `alembic upgrade head`"
        )
        self.current = current
        self.expected = expected


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def wait_for_database(db_engine: Engine) -> None:
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
    except Exception as e:
        logger.error(e)
        raise e


def head_revisions() -> set[str]:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    return set(ScriptDirectory.from_config(config).get_heads())


def current_revisions(db_engine: Engine) -> set[str]:
    with db_engine.connect() as connection:
        return set(MigrationContext.configure(connection).get_current_heads())


def ensure_schema_current(db_engine: Engine) -> None:
    """
    Raises:
        SchemaNotReady: the database is not stamped with every Alembic head
    """
    expected = head_revisions()
    current = current_revisions(db_engine)
    if current != expected:
        raise SchemaNotReady(current, expected)
    logger.info("Database schema at %s", ", ".join(sorted(current)))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--schema", action="store_true", help="also require the Alembic head")
    args = parser.parse_args(argv)

    logger.info("Waiting for the database")
    wait_for_database(engine)
    if args.schema:
        ensure_schema_current(engine)
    logger.info("Database ready")


if __name__ == "__main__":  # pragma: no cover
    main()
