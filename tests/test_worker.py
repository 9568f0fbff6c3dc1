from __future__ import annotations

from datetime import datetime, timedelta, timezone

import redis
from sqlmodel import select

from dietpanel.models import AuthSession, LoginAttempt
from dietpanel.worker.tasks import PURGE_LOCK_KEY, purge_expired


class FakeRedis:
    def __init__(self, down: bool = False) -> None:
        self.store: dict[str, str] = {}
        self.down = down

    def set(self, key, value, nx=False, ex=None):
        if self.down:
            raise redis.ConnectionError("redis down")
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        self.store.pop(key, None)


def _seed(db, user_id, now):
    db.add_all(
        [
            AuthSession(id="a" * 64, user_id=user_id, expires_at=now - timedelta(minutes=1)),
            AuthSession(id="b" * 64, user_id=user_id, expires_at=now + timedelta(days=1)),
            LoginAttempt(email="x@example.com", attempted_at=now - timedelta(days=31)),
            LoginAttempt(email="x@example.com", attempted_at=now - timedelta(days=1)),
        ]
    )
    db.commit()


def test_purge_removes_expired_rows(engine, db, make_user):
    now = datetime.now(timezone.utc)
    _seed(db, make_user().id, now)
    fake = FakeRedis()

    report = purge_expired(engine, fake, now=now)
    assert (report.sessions, report.login_attempts) == (1, 1)
    assert fake.store == {}

    db.expire_all()
    assert [s.id for s in db.exec(select(AuthSession)).all()] == ["b" * 64]
    assert len(db.exec(select(LoginAttempt)).all()) == 1


def test_purge_skips_when_locked(engine, db, make_user):
    now = datetime.now(timezone.utc)
    _seed(db, make_user().id, now)
    fake = FakeRedis()
    fake.store[PURGE_LOCK_KEY] = "other-worker"

    assert purge_expired(engine, fake, now=now) is None
    db.expire_all()
    assert len(db.exec(select(AuthSession)).all()) == 2


def test_purge_runs_without_redis(engine, db, make_user):
    now = datetime.now(timezone.utc)
    _seed(db, make_user().id, now)
    assert purge_expired(engine, FakeRedis(down=True), now=now).sessions == 1
