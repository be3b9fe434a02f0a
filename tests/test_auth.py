# tests/test_auth.py
import asyncio
from datetime import datetime, timedelta, timezone

from jose import jwt

import auth_service.main as auth_main
from auth_service import utils
from auth_service.db import SessionLocal
from auth_service.models import User
from .conftest import TEST_PASSWORD, register_user, register_verified_user


def _load_user(user_id):
    db = SessionLocal()
    try:
        return db.query(User).filter(User.id == user_id).first()
    finally:
        db.close()


def test_register_creates_unverified_user_with_otp(client, mailer, clock):
    """Registration stores an unverified user with a 6-digit code valid for 10 minutes and emails it."""
    r = client.post("/api/auth/register", json={"username": "alice", "email": "a@x.com", "password": "pw123"})

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["message"] == "Registered successfully, OTP sent!"

    user = _load_user(body["userId"])
    assert user.is_verified is False
    assert len(user.otp) == 6 and user.otp.isdigit()
    assert 100000 <= int(user.otp) <= 999999
    assert user.otp_expires == clock.now + timedelta(minutes=10)
    assert user.hashed_password != "pw123"
    assert mailer.sent == [("a@x.com", user.otp)]


def test_register_duplicate_username(client):
    """Reusing a username fails with 400 and does not create a second record."""
    register_user(client, "alice", "a@x.com")

    r = client.post("/api/auth/register", json={"username": "alice", "email": "other@x.com", "password": "secret"})
    assert r.status_code == 400
    assert r.json() == {"error": "Username already exists"}

    db = SessionLocal()
    try:
        assert db.query(User).filter(User.username == "alice").count() == 1
    finally:
        db.close()


def test_register_allows_duplicate_email(client):
    first = register_user(client, "bob", "shared@mine.org")
    second = register_user(client, "carol", "shared@mine.org")
    assert first != second


def test_username_is_case_sensitive(client):
    register_user(client, "Alice", "a@x.com")
    register_user(client, "alice", "a@x.com")


def test_register_survives_email_failure(client, mailer):
    """A failed OTP email is logged but the account is kept."""
    mailer.succeed = False
    user_id = register_user(client, "dora", "d@x.com")
    assert _load_user(user_id) is not None


def test_register_missing_fields(client):
    r = client.post("/api/auth/register", json={"username": "eve"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid request"


def test_verify_otp_nine_minutes_after_issue(client, mailer, clock):
    user_id = register_user(client, "alice", "a@x.com")
    clock.advance(minutes=9)

    r = client.post("/api/auth/verify-otp", json={"userId": user_id, "otp": mailer.last_code})

    assert r.status_code == 200, r.text
    assert r.json() == {"message": "OTP verified successfully!"}
    user = _load_user(user_id)
    assert user.is_verified is True
    assert user.otp is None and user.otp_expires is None


def test_verify_otp_eleven_minutes_after_issue(client, mailer, clock):
    user_id = register_user(client, "alice", "a@x.com")
    clock.advance(minutes=11)

    r = client.post("/api/auth/verify-otp", json={"userId": user_id, "otp": mailer.last_code})

    assert r.status_code == 400
    assert r.json() == {"error": "Invalid or expired OTP"}
    assert _load_user(user_id).is_verified is False


def test_verify_otp_rejected_exactly_at_expiry(client, mailer, clock):
    user_id = register_user(client, "alice", "a@x.com")
    clock.advance(minutes=10)

    r = client.post("/api/auth/verify-otp", json={"userId": user_id, "otp": mailer.last_code})
    assert r.status_code == 400


def test_verify_otp_wrong_code_leaves_state_unchanged(client, mailer):
    user_id = register_user(client, "alice", "a@x.com")
    code = mailer.last_code

    r = client.post("/api/auth/verify-otp", json={"userId": user_id, "otp": "000000"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid or expired OTP"}

    user = _load_user(user_id)
    assert user.otp == code
    assert user.is_verified is False

    # No lockout: the right code still works afterwards.
    r = client.post("/api/auth/verify-otp", json={"userId": user_id, "otp": code})
    assert r.status_code == 200


def test_verify_otp_twice_fails_second_time(client, mailer):
    user_id = register_user(client, "alice", "a@x.com")
    code = mailer.last_code

    assert client.post("/api/auth/verify-otp", json={"userId": user_id, "otp": code}).status_code == 200
    r = client.post("/api/auth/verify-otp", json={"userId": user_id, "otp": code})
    assert r.status_code == 400


def test_verify_otp_unknown_user(client):
    r = client.post("/api/auth/verify-otp", json={"userId": 9999, "otp": "123456"})
    assert r.status_code == 404
    assert r.json() == {"error": "User not found"}


def test_login_requires_verification(client):
    register_user(client, "alice", "a@x.com")

    r = client.post("/api/auth/login", json={"username": "alice", "password": TEST_PASSWORD})
    assert r.status_code == 400
    assert r.json() == {"error": "Please verify your account before logging in"}


def test_login_returns_one_day_token(client, mailer, settings):
    user_id = register_verified_user(client, mailer, "alice", "a@x.com")

    r = client.post("/api/auth/login", json={"username": "alice", "password": TEST_PASSWORD})

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["user"] == {"id": user_id, "username": "alice", "email": "a@x.com"}
    payload = jwt.decode(body["token"], settings.jwt_secret_key, algorithms=["HS256"])
    assert payload["sub"] == str(user_id)
    assert payload["exp"] - payload["iat"] == 24 * 60 * 60


def test_login_wrong_password(client, mailer):
    register_verified_user(client, mailer, "alice", "a@x.com")

    r = client.post("/api/auth/login", json={"username": "alice", "password": "nope"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid credentials"}


def test_login_unknown_user(client):
    r = client.post("/api/auth/login", json={"username": "ghost", "password": "whatever"})
    assert r.status_code == 404


def test_login_without_identifier(client):
    r = client.post("/api/auth/login", json={"password": "whatever"})
    assert r.status_code == 400


def test_login_by_email_uses_oldest_account(client, mailer):
    """With a shared email the first registered account is the one that logs in."""
    bob_id = register_verified_user(client, mailer, "bob", "shared@mine.org", password="bob-pass")
    register_verified_user(client, mailer, "carol", "shared@mine.org", password="carol-pass")

    r = client.post("/api/auth/login", json={"email": "shared@mine.org", "password": "bob-pass"})
    assert r.status_code == 200
    assert r.json()["user"]["id"] == bob_id

    r = client.post("/api/auth/login", json={"email": "shared@mine.org", "password": "carol-pass"})
    assert r.status_code == 400


def test_forgot_and_reset_password(client, mailer):
    user_id = register_verified_user(client, mailer, "alice", "a@x.com")

    r = client.post("/api/auth/forgot-password", json={"email": "a@x.com"})
    assert r.status_code == 200, r.text
    assert r.json() == {"message": "OTP sent to email", "userId": user_id}
    code = mailer.last_code

    r = client.post("/api/auth/reset-password", json={"userId": user_id, "otp": code, "newPassword": "new-pw"})
    assert r.status_code == 200
    assert r.json() == {"message": "Password reset successfully!"}
    assert _load_user(user_id).otp is None

    assert client.post("/api/auth/login", json={"username": "alice", "password": TEST_PASSWORD}).status_code == 400
    assert client.post("/api/auth/login", json={"username": "alice", "password": "new-pw"}).status_code == 200

    # The code was consumed.
    r = client.post("/api/auth/reset-password", json={"userId": user_id, "otp": code, "newPassword": "again"})
    assert r.status_code == 400


def test_forgot_password_does_not_require_verification(client, mailer):
    user_id = register_user(client, "alice", "a@x.com")

    r = client.post("/api/auth/forgot-password", json={"email": "a@x.com"})
    assert r.status_code == 200
    assert r.json()["userId"] == user_id
    assert len(mailer.sent) == 2
    assert _load_user(user_id).otp == mailer.last_code


def test_forgot_password_unknown_email(client):
    r = client.post("/api/auth/forgot-password", json={"email": "nobody@x.com"})
    assert r.status_code == 404
    assert r.json() == {"error": "Email not found"}


def test_reset_password_expired_code(client, mailer, clock):
    user_id = register_verified_user(client, mailer, "alice", "a@x.com")
    client.post("/api/auth/forgot-password", json={"email": "a@x.com"})
    clock.advance(minutes=11)

    r = client.post("/api/auth/reset-password",
                    json={"userId": user_id, "otp": mailer.last_code, "newPassword": "new-pw"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid or expired OTP"}
    assert client.post("/api/auth/login", json={"username": "alice", "password": TEST_PASSWORD}).status_code == 200


def test_reset_password_unknown_user(client):
    r = client.post("/api/auth/reset-password", json={"userId": 4242, "otp": "123456", "newPassword": "x"})
    assert r.status_code == 404


def test_resend_otp(client, mailer):
    user_id = register_user(client, "alice", "a@x.com")

    r = client.post("/api/auth/resend-otp", json={"userId": user_id})
    assert r.status_code == 200
    assert len(mailer.sent) == 2
    assert _load_user(user_id).otp == mailer.last_code


def test_resend_otp_for_verified_account(client, mailer):
    user_id = register_verified_user(client, mailer, "alice", "a@x.com")

    r = client.post("/api/auth/resend-otp", json={"userId": user_id})
    assert r.status_code == 400
    assert r.json() == {"error": "Account already verified"}


def test_resend_otp_email_failure(client, mailer):
    user_id = register_user(client, "alice", "a@x.com")
    mailer.succeed = False

    r = client.post("/api/auth/resend-otp", json={"userId": user_id})
    assert r.status_code == 503


def test_me_returns_current_user(client, mailer):
    user_id = register_verified_user(client, mailer, "alice", "a@x.com")
    token = client.post("/api/auth/login", json={"username": "alice", "password": TEST_PASSWORD}).json()["token"]

    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json() == {"id": user_id, "username": "alice", "email": "a@x.com"}


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code == 401


def _record_loop_state(calls, func):
    """Wraps func so each call records whether it ran on the event loop thread."""
    def wrapper(*args, **kwargs):
        try:
            asyncio.get_running_loop()
            calls.append("event-loop")
        except RuntimeError:
            calls.append("worker-thread")
        return func(*args, **kwargs)
    return wrapper


def test_register_hashes_password_off_the_event_loop(client, monkeypatch):
    calls = []
    monkeypatch.setattr(auth_main, "get_password_hash", _record_loop_state(calls, utils.get_password_hash))

    register_user(client, "alice", "a@x.com")

    assert calls == ["worker-thread"]


def test_new_codes_are_stored_off_the_event_loop(client, monkeypatch):
    user_id = register_user(client, "alice", "a@x.com")
    calls = []
    monkeypatch.setattr(auth_main, "generate_otp", _record_loop_state(calls, utils.generate_otp))

    assert client.post("/api/auth/resend-otp", json={"userId": user_id}).status_code == 200
    assert client.post("/api/auth/forgot-password", json={"email": "a@x.com"}).status_code == 200

    assert calls == ["worker-thread", "worker-thread"]


def test_token_issued_at_is_converted_to_utc(settings):
    issued = datetime(2026, 3, 2, 14, 0, 0, tzinfo=timezone(timedelta(hours=5)))

    token = utils.create_access_token({"sub": "7"}, settings, now=issued)

    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=["HS256"], options={"verify_exp": False})
    assert payload["iat"] == int(datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc).timestamp())
    assert payload["exp"] - payload["iat"] == 24 * 60 * 60


def test_naive_issued_at_is_read_as_utc(settings):
    token = utils.create_access_token({"sub": "7"}, settings, now=datetime(2026, 3, 2, 9, 0, 0))

    payload = jwt.decode(token, settings.jwt_secret_key, algorithms=["HS256"], options={"verify_exp": False})
    assert payload["iat"] == int(datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc).timestamp())
