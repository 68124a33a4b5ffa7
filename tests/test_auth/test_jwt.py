"""Unit tests for JWT token creation and decoding."""

from datetime import timedelta

import pytest
from jose import JWTError, jwt

from entitlements.auth.jwt import create_access_token, decode_token
from entitlements.config import settings


class TestCreateAccessToken:
    """Test access token creation."""

    def test_contains_type_access(self):
        payload = decode_token(create_access_token({"sub": "user-123"}))
        assert payload["type"] == "access"

    def test_contains_sub_and_role(self):
        payload = decode_token(create_access_token({"sub": "user-abc", "role": "admin"}))
        assert payload["sub"] == "user-abc"
        assert payload["role"] == "admin"

    def test_contains_iat_and_exp(self):
        payload = decode_token(create_access_token({"sub": "user-123"}))
        assert "iat" in payload
        assert "exp" in payload
        assert payload["exp"] > payload["iat"]

    def test_does_not_mutate_input(self):
        data = {"sub": "user-123"}
        create_access_token(data)
        assert data == {"sub": "user-123"}


class TestDecodeToken:
    """Test token verification failures."""

    def test_expired_token(self):
        token = create_access_token({"sub": "user-123"}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(JWTError):
            decode_token(token)

    def test_wrong_secret(self):
        token = jwt.encode({"sub": "user-123"}, "not-the-secret", algorithm=settings.jwt_algorithm)
        with pytest.raises(JWTError):
            decode_token(token)

    def test_garbage(self):
        with pytest.raises(JWTError):
            decode_token("not.a.valid.jwt")
