import pytest
from fastapi.testclient import TestClient
from jwt.exceptions import InvalidTokenError
from sqlalchemy.exc import OperationalError

from app.core.exceptions import STATUS_BY_KIND, ErrorKind
from app.core.security import (
    AccessClaims,
    PasswordResetClaims,
    create_access_token,
    create_password_reset_token,
    decode_access_token,
    decode_token,
)
from app.main import app
from app.services import auth_service


def test_root_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "OK"


def test_api_status(client):
    assert client.get("/api").json() == {"message": "API is running"}


def test_unknown_route_uses_error_shape(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_every_error_kind_has_a_status():
    assert set(STATUS_BY_KIND) == set(ErrorKind)


def test_database_outage_is_reported(monkeypatch):
    def unreachable(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(auth_service, "login", unreachable)
    client = TestClient(app, raise_server_exceptions=False)
    response = client.post(
        "/api/auth/login", json={"email": "ada@example.com", "password": "Secret123"}
    )
    assert response.status_code == 500
    assert response.json()["message"] == "Unable to reach the database server"


def test_token_claims_round_trip():
    claims = AccessClaims(
        id="u-1", email="a@example.com", username="a", roles=["user"], is_verified=True
    )
    decoded = decode_token(create_access_token(claims))
    assert decoded == claims


def test_reset_token_does_not_decode_as_access_token():
    token = create_password_reset_token(PasswordResetClaims(id="u-1", email="a@example.com"))
    assert isinstance(decode_token(token), PasswordResetClaims)
    with pytest.raises(InvalidTokenError):
        decode_access_token(token)


def test_tampered_token_is_rejected(client):
    claims = AccessClaims(id="u-1", email="a@example.com", username="a", roles=[])
    token = create_access_token(claims) + "x"
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


def test_token_for_deleted_user_is_rejected(client):
    claims = AccessClaims(id="missing", email="a@example.com", username="a", roles=[])
    response = client.get(
        "/api/auth/me",
        headers={"Authorization": f"Bearer {create_access_token(claims)}"},
    )
    assert response.status_code == 401
    assert response.json()["message"] == "User not found"
