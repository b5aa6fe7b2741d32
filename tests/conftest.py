import os

os.environ.setdefault("FINANCE_DATABASE_URL", "sqlite://")
os.environ.setdefault("FINANCE_BCRYPT_ROUNDS", "4")
os.environ.setdefault("FINANCE_TOKEN_SECRET", "test-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from auth import get_db  # noqa: E402
from database import Base, create_db_engine, make_sessionmaker  # noqa: E402
from main import app  # noqa: E402
from models import AuthUser  # noqa: E402


@pytest.fixture()
def engine():
    eng = create_db_engine("sqlite://")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    SessionLocal = make_sessionmaker(engine)
    with SessionLocal() as db:
        yield db


@pytest.fixture()
def client(engine):
    SessionLocal = make_sessionmaker(engine)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(session):
    def _make(email: str, name: str = "Test User") -> AuthUser:
        user = AuthUser(name=name, email=email, password="not-a-hash", active=True)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make
