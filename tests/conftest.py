from __future__ import annotations

from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from dietpanel.api.deps import (
    get_db,
    get_engine,
    get_mailer,
    get_presigner,
    get_redis,
    get_tpay_client,
)
from dietpanel.core import security
from dietpanel.core.config import settings
from dietpanel.crud import pzk_access
from dietpanel.crud import user as user_crud
from dietpanel.enums import MaterialStatus, UserRole
from dietpanel.integrations.storage import Presigner, StorageError
from dietpanel.integrations.tpay import TpayError, TpayTransaction
from dietpanel.main import app
from dietpanel.models import (
    PzkCategory,
    PzkMaterial,
    PzkMaterialPdf,
    PzkMaterialVideo,
    User,
)

PASSWORD = "correct-horse-42"


class FakePresigner(Presigner):
    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.fail = False

    def presign_get(
        self,
        object_key: str,
        *,
        expires_in: int,
        content_disposition: str,
        content_type: str,
    ) -> str:
        if self.fail:
            raise StorageError("signing failed")
        self.calls.append(
            {
                "object_key": object_key,
                "expires_in": expires_in,
                "content_disposition": content_disposition,
                "content_type": content_type,
            }
        )
        return f"https://storage.test/{object_key}?X-Amz-Expires={expires_in}"


class FakeTpay:
    configured = True

    def __init__(self) -> None:
        self.created: list[dict] = []
        self.fail = False
        self.signature_valid = True

    def create_transaction(self, **kwargs) -> TpayTransaction:
        if self.fail:
            raise TpayError("provider down")
        self.created.append(kwargs)
        n = len(self.created)
        return TpayTransaction(
            transaction_id=f"TR-{n}",
            payment_url=f"https://secure.sandbox.tpay.com/?title=TR-{n}",
        )

    def verify_notification(self, *, jws_signature, raw_body, form) -> bool:
        return self.signature_valid

    def close(self) -> None:
        pass


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    def send_best_effort(self, *, to: str, subject: str, text: str, html: str | None = None) -> None:
        self.sent.append({"to": to, "subject": subject, "text": text})


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        # Clean tables after each test (children first).
        session.rollback()
        for table in reversed(SQLModel.metadata.sorted_tables):
            session.exec(delete(table))
        session.commit()


@pytest.fixture()
def presigner() -> FakePresigner:
    return FakePresigner()


@pytest.fixture()
def tpay() -> FakeTpay:
    return FakeTpay()


@pytest.fixture()
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture(scope="function")
def client(engine, db, presigner, tpay, mailer) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_presigner] = lambda: presigner
    app.dependency_overrides[get_tpay_client] = lambda: tpay
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_redis] = lambda: None
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def pzk_enabled(monkeypatch) -> None:
    monkeypatch.setattr(settings, "FF_PZK", "true")


@pytest.fixture()
def prices(monkeypatch) -> None:
    monkeypatch.setattr(settings, "PZK_MODULE_1_PRICE", "299.00")
    monkeypatch.setattr(settings, "PZK_MODULE_2_PRICE", "299.00")
    monkeypatch.setattr(settings, "PZK_MODULE_3_PRICE", "299.00")
    monkeypatch.setattr(settings, "PZK_BUNDLE_ALL_PRICE", "699.00")


@pytest.fixture()
def make_user(db) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(
        role: UserRole = UserRole.patient,
        email: str | None = None,
        first_name: str | None = "Anna",
        **kwargs,
    ) -> User:
        counter["n"] += 1
        return user_crud.create(
            session=db,
            email=email or f"user{counter['n']}@example.com",
            password_hash=security.get_password_hash(PASSWORD),
            role=role,
            first_name=first_name,
            last_name="Kowalska",
            **kwargs,
        )

    return _make


def login(client: TestClient, email: str, password: str = PASSWORD) -> None:
    r = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text


@pytest.fixture()
def patient(client, make_user) -> User:
    """A patient logged in on ``client``."""
    user = make_user(role=UserRole.patient, email="patient@example.com")
    login(client, user.email)
    return user


def grant(db: Session, user: User, module: int, *, start: datetime | None = None, days: int = 30) -> None:
    start = start or datetime.now(timezone.utc) - timedelta(days=1)
    pzk_access.grant(
        session=db, user_id=user.id, module=module, start_at=start, expires_at=start + timedelta(days=days)
    )


@pytest.fixture()
def category(db) -> PzkCategory:
    row = PzkCategory(slug="nawyki", label="Nawyki", description="Codzienne nawyki", display_order=1)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@pytest.fixture()
def make_material(db, category) -> Callable[..., tuple[PzkMaterial, PzkMaterialPdf]]:
    def _make(
        module: int = 1,
        status: MaterialStatus = MaterialStatus.published,
        title: str = "Talerz zdrowego żywienia",
        order: int = 1,
        with_video: bool = False,
    ) -> tuple[PzkMaterial, PzkMaterialPdf]:
        material = PzkMaterial(
            module=module,
            category_id=category.id,
            status=status.value,
            order=order,
            title=title,
            description="Opis",
            content_md="# Treść",
        )
        db.add(material)
        db.commit()
        db.refresh(material)
        pdf = PzkMaterialPdf(
            material_id=material.id,
            object_key=f"pzk/module-{module}/{material.id}.pdf",
            file_name="Talerz.pdf",
            display_order=1,
        )
        db.add(pdf)
        if with_video:
            db.add(PzkMaterialVideo(material_id=material.id, youtube_video_id="dQw4w9WgXcQ", title="Wideo"))
        db.commit()
        db.refresh(pdf)
        return material, pdf

    return _make


