import os
import sys
from base64 import b64encode
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("CLEANUP_BACKEND", "inline")

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.core.rate_limiter import rate_limiter
from app.core.security import get_password_hash
from app.db.base import Base
from app.db.models import Holiday, Reservation, User, UserRole  # noqa: F401
from app.db.session import get_db
from app.main import app
from app.realtime.hub import build_realtime_hub
from app.storage.handwriting import HandwritingStorage

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN_CREDENTIALS = ("admin", "StrongPass123")
STAFF_CREDENTIALS = ("staff", "StrongPass123")


def _create_user(username: str, password: str, role: UserRole) -> None:
    db = TestingSessionLocal()
    try:
        db.add(User(username=username, password_hash=get_password_hash(password), role=role.value))
        db.commit()
    finally:
        db.close()


@pytest.fixture(autouse=True)
def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    rate_limiter.reset()


@pytest.fixture()
def storage(tmp_path) -> HandwritingStorage:
    return HandwritingStorage(root=str(tmp_path / "png"))


@pytest.fixture()
def hub(storage):
    return build_realtime_hub(TestingSessionLocal, storage=storage)


@pytest.fixture()
def client(hub) -> TestClient:
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    original_hub = app.state.realtime
    app.state.realtime = hub
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.realtime = original_hub


@pytest.fixture()
def admin_auth() -> tuple[str, str]:
    _create_user(ADMIN_CREDENTIALS[0], ADMIN_CREDENTIALS[1], UserRole.ADMIN)
    return ADMIN_CREDENTIALS


@pytest.fixture()
def staff_auth() -> tuple[str, str]:
    _create_user(STAFF_CREDENTIALS[0], STAFF_CREDENTIALS[1], UserRole.STAFF)
    return STAFF_CREDENTIALS


@pytest.fixture()
def ws_headers(staff_auth) -> dict[str, str]:
    token = b64encode(f"{staff_auth[0]}:{staff_auth[1]}".encode()).decode()
    return {"Authorization": f"Basic {token}"}
