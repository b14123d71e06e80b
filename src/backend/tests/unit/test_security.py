"""
Unit tests for signed values, one-time codes and redirect targets.
"""

from datetime import timedelta

import jwt
import pytest

from api.services.auth_service import safe_redirect
from core.config import settings
from core.security import (
    TokenExpiredError,
    TokenInvalidError,
    codes_match,
    generate_verification_code,
    hash_code,
    hash_password,
    sign_value,
    unsign_value,
    verify_password,
)


class TestSignedValues:
    def test_round_trip_keeps_claims(self):
        claims = unsign_value(sign_value({"sid": "abc"}))

        assert claims["sid"] == "abc"
        assert "iat" in claims

    def test_expired_value_rejected(self):
        token = sign_value({"sid": "abc"}, expires_delta=timedelta(seconds=-5))

        with pytest.raises(TokenExpiredError):
            unsign_value(token)

    def test_foreign_secret_rejected(self):
        token = jwt.encode({"sid": "abc"}, "not-ours", algorithm=settings.security.algorithm)

        with pytest.raises(TokenInvalidError):
            unsign_value(token)

    def test_garbage_rejected(self):
        with pytest.raises(TokenInvalidError):
            unsign_value("definitely.not.a-token")

    def test_rotated_secret_still_verifies(self, monkeypatch):
        old_token = sign_value({"sid": "abc"})
        monkeypatch.setattr(
            settings.security,
            "session_secrets",
            ["new-secret"] + list(settings.security.session_secrets),
        )

        assert unsign_value(old_token)["sid"] == "abc"
        assert jwt.decode(
            sign_value({"sid": "x"}), "new-secret", algorithms=[settings.security.algorithm]
        )["sid"] == "x"


class TestCodesAndPasswords:
    def test_code_is_numeric_with_configured_length(self):
        code = generate_verification_code()

        assert code.isdigit()
        assert len(code) == settings.security.verification_code_length

    def test_code_hash_matches(self):
        stored = hash_code("123456")

        assert codes_match("123456", stored)
        assert not codes_match("654321", stored)

    def test_password_hash(self):
        hashed = hash_password("s3cret!")

        assert verify_password("s3cret!", hashed)
        assert not verify_password("wrong", hashed)
        assert not verify_password("s3cret!", None)


class TestSafeRedirect:
    @pytest.mark.parametrize(
        "target,expected",
        [
            ("/incidents?page=2", "/incidents?page=2"),
            (None, "/"),
            ("", "/"),
            ("https://evil.example", "/"),
            ("//evil.example/path", "/"),
            ("relative/path", "/"),
        ],
    )
    def test_only_local_paths(self, target, expected):
        assert safe_redirect(target) == expected
