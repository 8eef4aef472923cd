"""
Unit tests for ID token verification.
"""

import jwt
import pytest

from aura.infrastructure.auth import TokenVerifier
from aura.infrastructure.exceptions import AuthError

from conftest import TEST_JWT_SECRET, TEST_PROJECT_ID, make_token


@pytest.fixture
def verifier():
    return TokenVerifier(TEST_PROJECT_ID, TEST_JWT_SECRET)


class TestTokenVerifier:

    def test_valid_token(self, verifier):
        identity = verifier.verify(make_token(uid="abc", email="grace@example.com", name="Grace"))

        assert identity.uid == "abc"
        assert identity.email == "grace@example.com"
        assert identity.email_verified is True
        assert identity.display_name == "Grace"

    def test_expired_token(self, verifier):
        with pytest.raises(AuthError, match="expired"):
            verifier.verify(make_token(expires_in=-60))

    def test_wrong_secret(self, verifier):
        token = make_token(secret="another-secret-that-is-long-enough-000000")
        with pytest.raises(AuthError):
            verifier.verify(token)

    def test_wrong_audience(self, verifier):
        with pytest.raises(AuthError):
            verifier.verify(make_token(aud="someone-else"))

    def test_wrong_issuer(self, verifier):
        with pytest.raises(AuthError):
            verifier.verify(make_token(iss="https://evil.example.com"))

    def test_hs256_rejected_without_secret(self):
        verifier = TokenVerifier(TEST_PROJECT_ID)
        with pytest.raises(AuthError, match="Unsupported"):
            verifier.verify(make_token())

    def test_unsigned_token_rejected(self, verifier):
        token = jwt.encode({"sub": "abc"}, key=None, algorithm="none")
        with pytest.raises(AuthError):
            verifier.verify(token)

    def test_garbage_rejected(self, verifier):
        with pytest.raises(AuthError):
            verifier.verify("not-a-jwt")
