"""
Maintenance jobs.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import redis
from sqlalchemy import Engine
from sqlmodel import Session

from dietpanel.core.redis import acquire_lock, release_lock
from dietpanel.crud import auth_session, login_attempt

logger = logging.getLogger(__name__)

PURGE_LOCK_KEY = "maintenance:purge:lock"
PURGE_LOCK_TTL_SECONDS = 60 * 10
LOGIN_ATTEMPT_RETENTION_DAYS = 30


@dataclass(frozen=True)
class PurgeReport:
    sessions: int
    login_attempts: int


def purge_expired(
    engine: Engine,
    redis_client: redis.Redis | None = None,
    now: datetime | None = None,
) -> PurgeReport | None:
    """
    Delete expired login sessions and login attempts past retention.

    With a Redis client, only one worker runs the purge at a time; a run that
    cannot take the lock returns None. If Redis is unreachable the purge runs
    anyway, deleting the same rows twice is harmless.
    """
    now = now or datetime.now(timezone.utc)

    lock_value = str(uuid4())
    locked = False
    if redis_client is not None:
        try:
            locked = acquire_lock(
                redis_client, PURGE_LOCK_KEY, lock_value, expire_seconds=PURGE_LOCK_TTL_SECONDS
            )
        except redis.RedisError as e:
            logger.warning("Purge lock unavailable, running unlocked: %s", e)
        else:
            if not locked:
                logger.info("Purge already running, skip this run.")
                return None

    try:
        with Session(engine) as session:
            sessions = auth_session.purge_expired(session=session, now=now)
            attempts = login_attempt.purge_before(
                session=session, cutoff=now - timedelta(days=LOGIN_ATTEMPT_RETENTION_DAYS)
            )
        logger.info("Purged %d expired sessions and %d old login attempts", sessions, attempts)
        return PurgeReport(sessions=sessions, login_attempts=attempts)
    finally:
        if locked:
            try:
                release_lock(redis_client, PURGE_LOCK_KEY, lock_value)
            except redis.RedisError as e:
                logger.warning("Failed to release purge lock: %s", e)
