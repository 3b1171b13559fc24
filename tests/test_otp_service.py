from datetime import timedelta

import pytest

from app.core.exceptions import BadRequestException, ErrorKind, OTPRateLimitException
from app.core.security import PasswordResetClaims, decode_token, hash_password
from app.models import OTP, User
from app.services import auth_service, otp_service


@pytest.fixture
def user(db):
    user = User(
        first_name="Grace",
        last_name="Hopper",
        username="grace",
        email="grace@example.com",
        password=hash_password("Secret123"),
        roles=["admin"],
    )
    db.add(user)
    db.commit()
    return user


def test_generate_otp_is_four_digits(monkeypatch):
    monkeypatch.undo()
    for _ in range(200):
        code = otp_service.generate_otp()
        assert len(code) == 4
        assert 1000 <= int(code) <= 9999


def test_generate_and_save_otp_stores_only_the_hash(db, user):
    raw = otp_service.generate_and_save_otp(db, user.id)
    db.commit()

    record = db.query(OTP).one()
    assert record.otp_hash != raw
    assert record.is_active is True
    assert record.attempts == 0
    assert record.expires_at - record.requested_at == timedelta(minutes=10)


def test_cooldown_applies_across_purposes(db, user):
    otp_service.generate_and_save_otp(db, user.id, "password_reset")
    db.commit()

    with pytest.raises(OTPRateLimitException) as exc_info:
        otp_service.generate_and_save_otp(db, user.id, "email_verification")
    assert exc_info.value.kind is ErrorKind.RATE_LIMITED


def test_latest_valid_otp_is_newest_active(db, user):
    otp_service.generate_and_save_otp(db, user.id)
    db.commit()
    older = db.query(OTP).one()
    older.requested_at = older.requested_at - timedelta(seconds=120)
    db.commit()
    otp_service.generate_and_save_otp(db, user.id)
    db.commit()

    latest = otp_service.find_latest_valid_otp(db, user.id)
    assert latest.id != older.id


def test_consume_without_valid_otp(db, user):
    with pytest.raises(BadRequestException) as exc_info:
        otp_service.consume_otp(db, user.id, "4321")
    assert exc_info.value.detail == "No valid OTP found"


def test_validate_rejects_inactive_record(db, user, fixed_otp):
    otp_service.generate_and_save_otp(db, user.id)
    db.commit()
    record = db.query(OTP).one()
    record.is_active = False

    with pytest.raises(BadRequestException) as exc_info:
        otp_service.validate_otp(record, fixed_otp)
    assert exc_info.value.detail == "OTP has already been used"


def test_verify_for_password_reset_returns_reset_token(db, user, fixed_otp):
    otp_service.generate_and_save_otp(db, user.id, "password_reset")
    db.commit()

    result = auth_service.verify_otp(db, user.id, fixed_otp, "password_reset")

    assert result["verified"] is True
    claims = decode_token(result["reset_token"])
    assert isinstance(claims, PasswordResetClaims)
    assert claims.id == user.id
    assert claims.email == user.email
    assert db.query(OTP).filter(OTP.is_active == True).count() == 0  # noqa: E712


def test_verify_with_unknown_purpose_keeps_the_code(db, user, fixed_otp):
    otp_service.generate_and_save_otp(db, user.id)
    db.commit()

    with pytest.raises(BadRequestException) as exc_info:
        auth_service.verify_otp(db, user.id, fixed_otp, "bogus")
    assert exc_info.value.detail == "Invalid OTP purpose"

    db.rollback()
    record = db.query(OTP).one()
    assert record.is_active is True
    db.refresh(user)
    assert user.is_email_verified is False
