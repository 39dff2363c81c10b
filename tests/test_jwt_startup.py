"""
tests/test_jwt_startup — JWT Secret Validation at Startup
===========================================================
The API must refuse to start when JWT_SECRET is missing, blank, too short,
or a known weak default.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import jwt
import pytest
from jwt.exceptions import InvalidTokenError

from goalcircle.api.deps import (
    JWT_ALGORITHM,
    JWT_SECRET,
    _load_jwt_secret,
    bearer_token,
    decode_identity,
)


class TestJWTSecretValidation:
    """Prove that _load_jwt_secret() rejects bad secrets and accepts good ones."""

    def test_rejects_missing_secret(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("JWT_SECRET", None)
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                _load_jwt_secret()

    def test_rejects_empty_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                _load_jwt_secret()

    @pytest.mark.parametrize("weak", ["goalcircle-dev-secret-change-me", "change-me", "secret"])
    def test_rejects_known_weak_default(self, weak):
        with patch.dict(os.environ, {"JWT_SECRET": weak}):
            with pytest.raises(RuntimeError, match="known weak default"):
                _load_jwt_secret()

    def test_rejects_short_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "tooshort"}):
            with pytest.raises(RuntimeError, match="too short"):
                _load_jwt_secret()

    def test_accepts_strong_secret(self):
        good_secret = "a" * 64
        with patch.dict(os.environ, {"JWT_SECRET": good_secret}):
            assert _load_jwt_secret() == good_secret


class TestIdentityDecoding:
    def test_decodes_sub_and_username(self):
        token = jwt.encode({"sub": "42", "username": "zoe"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        user = decode_identity(token)
        assert (user.id, user.username) == (42, "zoe")

    def test_missing_username_falls_back(self):
        token = jwt.encode({"sub": "7"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        assert decode_identity(token).username == "user-7"

    def test_wrong_signature_rejected(self):
        token = jwt.encode({"sub": "7"}, "another-secret-" + "y" * 40, algorithm=JWT_ALGORITHM)
        with pytest.raises(InvalidTokenError):
            decode_identity(token)

    def test_missing_sub_rejected(self):
        token = jwt.encode({"username": "nobody"}, JWT_SECRET, algorithm=JWT_ALGORITHM)
        with pytest.raises(InvalidTokenError):
            decode_identity(token)

    @pytest.mark.parametrize(
        ("header", "expected"),
        [(None, None), ("Basic abc", None), ("Bearer ", None), ("Bearer tok", "tok")],
    )
    def test_bearer_token(self, header, expected):
        assert bearer_token(header) == expected
