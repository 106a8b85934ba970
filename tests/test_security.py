"""
Tests for password hashing and JWT token issuance/verification.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from errors import AuthenticationError, TokenExpiredError, TokenInvalidError
from models import User
from security import TokenService, hash_password, verify_password


@pytest.fixture
def user():
    return User(id=7, username="alice", password_hash="x", role="admin")


def test_hash_and_verify_password():
    hashed = hash_password("s3cret")
    assert verify_password("s3cret", hashed)
    assert not verify_password("other", hashed)


class TestTokenService:

    def test_issue_then_verify(self, user):
        tokens = TokenService("secret")
        claims = tokens.verify(tokens.issue(user))

        assert claims.subject == 7
        assert claims.role == "admin"
        assert claims.expires_at - claims.issued_at == timedelta(hours=2)

    def test_expired_token_rejected(self, user):
        past = datetime.now(timezone.utc) - timedelta(hours=3)
        token = TokenService("secret", clock=lambda: past).issue(user)

        with pytest.raises(TokenExpiredError) as excinfo:
            TokenService("secret").verify(token)
        assert isinstance(excinfo.value, AuthenticationError)

    def test_token_valid_until_expiry(self, user):
        issued = datetime.now(timezone.utc) - timedelta(minutes=119)
        token = TokenService("secret", clock=lambda: issued).issue(user)
        assert TokenService("secret").verify(token).subject == 7

    def test_wrong_secret_rejected(self, user):
        token = TokenService("secret").issue(user)
        with pytest.raises(TokenInvalidError):
            TokenService("another-secret").verify(token)

    def test_garbage_token_rejected(self):
        with pytest.raises(TokenInvalidError):
            TokenService("secret").verify("not-a-token")

    def test_token_without_expiry_rejected(self):
        token = jwt.encode({"sub": "1", "role": "user"}, "secret", algorithm="HS256")
        with pytest.raises(TokenInvalidError):
            TokenService("secret").verify(token)

    def test_custom_ttl(self, user):
        tokens = TokenService("secret", ttl=timedelta(minutes=5))
        claims = tokens.verify(tokens.issue(user))
        assert claims.expires_at - claims.issued_at == timedelta(minutes=5)
