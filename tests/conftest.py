import os
import tempfile

# Settings are read at import time, so the environment must be in place
# before anything under `app` is imported.
_DB_FILE = os.path.join(tempfile.mkdtemp(prefix="account-service-"), "test.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_FILE}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["MAIL_USERNAME"] = "mailer@example.com"
os.environ["MAIL_PASSWORD"] = "mailer-password"
os.environ["MAIL_FROM"] = "mailer@example.com"
os.environ["MAIL_SUPPRESS_SEND"] = "true"
os.environ["MAIL_RETRY_BACKOFF_SECONDS"] = "0"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest
from fastapi.testclient import TestClient

from app.database import Base, SessionLocal, engine
from app.main import app
from app import models  # noqa: F401
from app.services import email_service, otp_service

KNOWN_OTP = "4321"
PASSWORD = "Secret123"


@pytest.fixture(autouse=True)
def reset_database():
    # Drop all tables and recreate them before each test
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def fixed_otp(monkeypatch):
    """Every issued OTP is KNOWN_OTP so tests can type it back in."""
    monkeypatch.setattr(otp_service, "generate_otp", lambda: KNOWN_OTP)
    return KNOWN_OTP


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Records outgoing messages instead of talking to SMTP."""
    sent = []

    async def fake_send(message, template_name=None):
        sent.append(message)

    monkeypatch.setattr(email_service.fast_mail, "send_message", fake_send)
    return sent


def signup_payload(**overrides):
    payload = {
        "firstName": "Ada",
        "lastName": "Lovelace",
        "username": "ada",
        "email": "ada@example.com",
        "password": PASSWORD,
        "roles": ["user"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def signed_up(client):
    """A freshly signed-up (unverified) user: the signup response data."""
    response = client.post("/api/auth/signup", json=signup_payload())
    assert response.status_code == 201
    return response.json()["data"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}
