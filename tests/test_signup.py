from app.models import EmailOutbox, OTP, User
from app.core.security import verify_password

from tests.conftest import PASSWORD, bearer, signup_payload


def test_signup_returns_unverified_user_and_tokens(client):
    response = client.post("/api/auth/signup", json=signup_payload())
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["user"]["email"] == "ada@example.com"
    assert data["user"]["username"] == "ada"
    assert data["user"]["roles"] == ["user"]
    assert data["user"]["isverified"] is False
    assert data["accessToken"]
    assert data["refreshToken"]


def test_signup_stores_hashed_password(client, db):
    client.post("/api/auth/signup", json=signup_payload())
    user = db.query(User).filter(User.email == "ada@example.com").one()
    assert user.password != PASSWORD
    assert verify_password(PASSWORD, user.password)
    assert user.is_email_verified is False
    assert user.first_name == "Ada"


def test_signup_persists_otp_and_delivers_email(client, db, sent_emails):
    data = client.post("/api/auth/signup", json=signup_payload()).json()["data"]

    otps = db.query(OTP).filter(OTP.user_id == data["user"]["id"]).all()
    assert len(otps) == 1
    assert otps[0].is_active is True
    assert otps[0].purpose == "email_verification"
    assert otps[0].otp_hash != "4321"

    assert len(sent_emails) == 1
    assert "ada@example.com" in str(sent_emails[0].recipients[0])
    assert "4321" in sent_emails[0].body

    outbox = db.query(EmailOutbox).one()
    assert outbox.status == "sent"
    assert outbox.attempts == 1
    assert outbox.body == ""


def test_signup_access_token_works_on_me(client, signed_up):
    response = client.get("/api/auth/me", headers=bearer(signed_up["accessToken"]))
    assert response.status_code == 200
    profile = response.json()["data"]
    assert profile["username"] == "ada"
    assert profile["firstName"] == "Ada"
    assert profile["isEmailVerified"] is False
    assert "password" not in profile


def test_signup_duplicate_email_only(client, signed_up):
    response = client.post("/api/auth/signup", json=signup_payload(username="someone_else"))
    assert response.status_code == 409
    assert response.json()["message"] == "Email already exists"


def test_signup_duplicate_username_only(client, signed_up):
    response = client.post("/api/auth/signup", json=signup_payload(email="other@example.com"))
    assert response.status_code == 409
    assert response.json()["message"] == "Username already exists"


def test_signup_duplicate_email_and_username(client, signed_up):
    response = client.post("/api/auth/signup", json=signup_payload())
    assert response.status_code == 409
    message = response.json()["message"]
    assert "email" in message and "username" in message


def test_signup_email_and_username_taken_by_different_users(client, signed_up):
    client.post(
        "/api/auth/signup",
        json=signup_payload(username="grace", email="grace@example.com"),
    )
    response = client.post(
        "/api/auth/signup",
        json=signup_payload(username="grace", email="ada@example.com"),
    )
    assert response.status_code == 409
    assert response.json()["message"] == "Both email and username already exist"


def test_signup_rejects_weak_password(client):
    response = client.post("/api/auth/signup", json=signup_payload(password="alllowercase1"))
    assert response.status_code == 400
    assert response.json()["message"] == "Password must contain at least one uppercase letter"


def test_signup_rejects_short_first_name(client):
    response = client.post("/api/auth/signup", json=signup_payload(firstName="A"))
    assert response.status_code == 400
    assert response.json()["message"] == "First name must be at least 2 characters"


def test_signup_reports_missing_field(client):
    payload = signup_payload()
    del payload["roles"]
    response = client.post("/api/auth/signup", json=payload)
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Missing required field: roles"}


def test_signup_succeeds_when_email_delivery_fails(client, db, monkeypatch):
    from fastapi_mail.errors import ConnectionErrors
    from app.services import email_service

    calls = []

    async def broken_send(message, template_name=None):
        calls.append(message)
        raise ConnectionErrors("SMTP down")

    monkeypatch.setattr(email_service.fast_mail, "send_message", broken_send)

    response = client.post("/api/auth/signup", json=signup_payload())
    assert response.status_code == 201

    outbox = db.query(EmailOutbox).one()
    assert outbox.status == "failed"
    assert outbox.attempts == 3
    assert "SMTP down" in outbox.last_error
    assert outbox.body == ""
    assert len(calls) == 3
