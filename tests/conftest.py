import os

os.environ["APP_ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret-0123456789abcdefghijklmnopqrstuvwxyz"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OTP_CLEANUP_INTERVAL_SECONDS"] = "0"
os.environ["WHATSAPP_API_KEY"] = "test-api-key-0123456789"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from booking_api import models  # noqa: F401
from booking_api.config import Settings, get_settings
from booking_api.database import Base, get_db
from booking_api.main import app
from booking_api.whatsapp import get_dispatcher


class FakeDispatcher:
    """Records sends instead of calling WhatsApp."""

    def __init__(self, error=None, message_id="msg-123"):
        self.sent = []
        self.error = error
        self.message_id = message_id

    def send_otp(self, phone_number, otp_code):
        self.sent.append((phone_number, otp_code))
        if self.error:
            raise self.error
        return self.message_id

    @property
    def last_code(self):
        return self.sent[-1][1]


def make_settings(**overrides) -> Settings:
    values = {"JWT_SECRET": os.environ["JWT_SECRET"], "DATABASE_URL": "sqlite://"}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def production_settings():
    return make_settings(APP_ENV="production")


@pytest.fixture
def development_settings():
    return make_settings(APP_ENV="development")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def client(session_factory, dispatcher):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    yield TestClient(app)
    app.dependency_overrides.clear()
