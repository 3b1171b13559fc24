from datetime import datetime, timedelta, timezone

import jwt

from app.config import settings
from app.core.security import verify_password
from app.models import OTP, RefreshToken, User

from tests.conftest import PASSWORD, bearer

NEW_PASSWORD = "Brandnew456"


def _allow_new_otp(db):
    for record in db.query(OTP).all():
        record.requested_at = record.requested_at - timedelta(seconds=61)
    db.commit()


def _reset_token(client, db, fixed_otp):
    _allow_new_otp(db)
    requested = client.post(
        "/api/auth/reset-password/request-otp", json={"email": "ada@example.com"}
    )
    assert requested.status_code == 200
    verified = client.post(
        "/api/auth/reset-password/verify-otp",
        json={"email": "ada@example.com", "code": fixed_otp},
    )
    assert verified.status_code == 200
    return verified.json()["isVerified"]["resetToken"]


def test_full_password_reset_flow(client, db, signed_up, fixed_otp, sent_emails):
    login = client.post(
        "/api/auth/login", json={"email": "ada@example.com", "password": PASSWORD}
    ).json()["data"]
    old_hash = db.query(User).one().password

    reset_token = _reset_token(client, db, fixed_otp)
    assert "Reset Your Password" == sent_emails[-1].subject

    response = client.post(
        "/api/auth/reset-password/reset",
        json={"newPassword": NEW_PASSWORD, "confirmPassword": NEW_PASSWORD},
        headers=bearer(reset_token),
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Password reset successfully"

    db.expire_all()
    user = db.query(User).one()
    assert user.password != old_hash
    assert verify_password(NEW_PASSWORD, user.password)
    assert db.query(RefreshToken).count() == 0

    for old_refresh in (signed_up["refreshToken"], login["refreshToken"]):
        redeemed = client.post("/api/auth/refresh-token", json={"refreshToken": old_refresh})
        assert redeemed.status_code == 401

    relogin = client.post(
        "/api/auth/login", json={"email": "ada@example.com", "password": NEW_PASSWORD}
    )
    assert relogin.status_code == 200


def test_verify_returns_user_id_and_reset_token(client, db, signed_up, fixed_otp):
    _allow_new_otp(db)
    client.post("/api/auth/reset-password/request-otp", json={"email": "ada@example.com"})
    body = client.post(
        "/api/auth/reset-password/verify-otp",
        json={"email": "ada@example.com", "code": fixed_otp},
    ).json()
    assert body["isVerified"]["verified"] is True
    assert body["isVerified"]["userId"] == signed_up["user"]["id"]

    claims = jwt.decode(body["isVerified"]["resetToken"], options={"verify_signature": False})
    assert claims["purpose"] == "password_reset"
    assert claims["id"] == signed_up["user"]["id"]
    assert claims["exp"] - claims["iat"] == settings.password_reset_token_expire_seconds


def test_request_otp_for_unknown_email(client):
    response = client.post(
        "/api/auth/reset-password/request-otp", json={"email": "ghost@example.com"}
    )
    assert response.status_code == 404
    assert response.json()["message"] == "User not found"


def test_verify_reset_otp_without_any_code(client, db, signed_up, fixed_otp):
    for record in db.query(OTP).all():
        record.is_active = False
    db.commit()

    response = client.post(
        "/api/auth/reset-password/verify-otp",
        json={"email": "ada@example.com", "code": fixed_otp},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "No valid OTP found"


def test_verify_reset_otp_requires_email(client, signed_up, fixed_otp):
    response = client.post("/api/auth/reset-password/verify-otp", json={"code": fixed_otp})
    assert response.status_code == 400
    assert response.json()["message"] == "Missing required field: email"


def test_reset_rejects_access_token(client, signed_up):
    response = client.post(
        "/api/auth/reset-password/reset",
        json={"newPassword": NEW_PASSWORD, "confirmPassword": NEW_PASSWORD},
        headers=bearer(signed_up["accessToken"]),
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Please provide a valid password reset token"


def test_reset_rejects_expired_token(client, signed_up):
    past = datetime.now(timezone.utc) - timedelta(minutes=10)
    token = jwt.encode(
        {
            "purpose": "password_reset",
            "id": signed_up["user"]["id"],
            "email": "ada@example.com",
            "iat": past,
            "exp": past + timedelta(seconds=5),
        },
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    response = client.post(
        "/api/auth/reset-password/reset",
        json={"newPassword": NEW_PASSWORD, "confirmPassword": NEW_PASSWORD},
        headers=bearer(token),
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


def test_reset_requires_token(client):
    response = client.post(
        "/api/auth/reset-password/reset",
        json={"newPassword": NEW_PASSWORD, "confirmPassword": NEW_PASSWORD},
    )
    assert response.status_code == 401
    assert response.json()["message"] == "Authentication token is required"


def test_reset_passwords_must_match(client, db, signed_up, fixed_otp):
    reset_token = _reset_token(client, db, fixed_otp)
    response = client.post(
        "/api/auth/reset-password/reset",
        json={"newPassword": NEW_PASSWORD, "confirmPassword": "Different789"},
        headers=bearer(reset_token),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Passwords don't match"


def test_reset_token_is_not_an_access_token(client, db, signed_up, fixed_otp):
    reset_token = _reset_token(client, db, fixed_otp)
    response = client.get("/api/auth/me", headers=bearer(reset_token))
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"
