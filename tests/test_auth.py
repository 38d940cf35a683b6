"""Tests for passwords, JWT sessions and the auth service."""

from datetime import datetime, timedelta, timezone

import jwt as pyjwt
import pytest

from aikanban.auth import jwt as auth_jwt
from aikanban.auth.passwords import hash_password, verify_password
from aikanban.auth.service import AuthEvent, AuthEvents, AuthService
from aikanban.errors import AuthenticationError, ValidationError


class TestPasswords:

    def test_hash_round_trip(self):
        encoded = hash_password("s3cret!", iterations=1000)
        assert encoded.startswith("pbkdf2_sha256$1000$")
        assert "s3cret!" not in encoded
        assert verify_password("s3cret!", encoded)
        assert not verify_password("wrong", encoded)

    def test_salts_differ(self):
        assert hash_password("same", iterations=1000) != hash_password("same", iterations=1000)

    @pytest.mark.parametrize("encoded", ["", "garbage", "md5$1$00$00", "pbkdf2_sha256$x$zz$zz"])
    def test_malformed_hash_never_verifies(self, encoded):
        assert verify_password("anything", encoded) is False


class TestJWT:

    def test_token_carries_user_and_session(self):
        token, expires_at = auth_jwt.create_access_token("user-1", "session-1")
        payload = auth_jwt.decode_access_token(token)
        assert payload["sub"] == "user-1"
        assert payload["jti"] == "session-1"
        assert expires_at > datetime.now(timezone.utc)

    def test_expired_token_is_rejected(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=auth_jwt.JWT_EXPIRATION_HOURS + 1)
        token, _ = auth_jwt.create_access_token("user-1", "session-1", now=issued)
        assert auth_jwt.decode_access_token(token) is None

    def test_token_without_session_is_rejected(self):
        token = pyjwt.encode({"sub": "user-1"}, auth_jwt.JWT_SECRET_KEY, algorithm=auth_jwt.JWT_ALGORITHM)
        assert auth_jwt.decode_access_token(token) is None

    def test_tampered_token_is_rejected(self):
        token, _ = auth_jwt.create_access_token("user-1", "session-1")
        assert auth_jwt.decode_access_token(token + "x") is None


class TestAuthService:

    @pytest.fixture
    def events(self):
        return AuthEvents()

    @pytest.fixture
    def auth(self, db_session, events):
        return AuthService(db_session, events=events)

    def test_sign_up_opens_session(self, auth, events):
        seen = []
        auth.on_auth_state_change(lambda event, session: seen.append((event, session)))

        session = auth.sign_up("  New@Example.com ", "password1", name="New User")

        assert session.user.email == "new@example.com"
        assert session.user.name == "New User"
        assert session.token_type == "bearer"
        assert auth.get_current_session(session.access_token).user.id == session.user.id
        assert seen == [(AuthEvent.SIGNED_UP, session)]

    @pytest.mark.parametrize("email,password", [("not-an-email", "password1"), ("a@b.c", "short")])
    def test_sign_up_validation(self, auth, email, password):
        with pytest.raises(ValidationError):
            auth.sign_up(email, password)

    def test_duplicate_email_rejected(self, auth):
        with pytest.raises(ValidationError):
            auth.sign_up("test@example.com", "password1")

    def test_sign_in(self, auth, test_user_id, test_password):
        seen = []
        auth.on_auth_state_change(lambda event, session: seen.append(event))

        session = auth.sign_in("TEST@example.com", test_password)

        assert session.user.id == test_user_id
        assert seen == [AuthEvent.SIGNED_IN]

    @pytest.mark.parametrize("email,password", [("test@example.com", "wrong-password"), ("nobody@example.com", "x")])
    def test_sign_in_rejected(self, auth, email, password):
        with pytest.raises(AuthenticationError):
            auth.sign_in(email, password)

    def test_sign_out_revokes_session(self, auth, test_password):
        seen = []
        unsubscribe = auth.on_auth_state_change(lambda event, session: seen.append((event, session)))
        session = auth.sign_in("test@example.com", test_password)

        assert auth.sign_out(session.access_token) is True
        assert auth.get_current_session(session.access_token) is None
        assert auth.sign_out(session.access_token) is False
        assert seen[-1] == (AuthEvent.SIGNED_OUT, None)

        unsubscribe()
        auth.sign_in("test@example.com", test_password)
        assert len(seen) == 2

    def test_sessions_are_independent(self, auth, test_password):
        first = auth.sign_in("test@example.com", test_password)
        second = auth.sign_in("test@example.com", test_password)

        auth.sign_out(first.access_token)

        assert auth.get_current_session(first.access_token) is None
        assert auth.get_current_session(second.access_token) is not None

    def test_garbage_token_has_no_session(self, auth):
        assert auth.get_current_session("not-a-jwt") is None
