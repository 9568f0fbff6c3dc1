"""
Seed data.

Runs after migrations and creates the first dietitian account from
FIRST_DIETITIAN_EMAIL / FIRST_DIETITIAN_PASSWORD when both are set. Stops
with an error if the database is not at the Alembic head yet.

Usage:
    python -m dietpanel.initial_data
"""
import logging

from sqlmodel import Session

from dietpanel.backend_pre_start import ensure_schema_current
from dietpanel.core.db import engine, init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init() -> None:
    ensure_schema_current(engine)
    with Session(engine) as session:
        init_db(session)


def main() -> None:
    logger.info("Creating initial data")
    init()
    logger.info("Initial data created")


if __name__ == "__main__":  # pragma: no cover
    main()
