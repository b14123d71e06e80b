"""
Security utilities: password hashing, signed cookie values and one-time codes.

Cookie values are short JWTs. New values are signed with the first entry of
`SECURITY_SESSION_SECRETS`; decoding accepts any entry so secrets can be
rotated without invalidating every session at once.
"""

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import bcrypt
import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidSignatureError, InvalidTokenError

from core.config import settings


class SecurityError(Exception):
    """Base exception for security-related errors."""

    pass


class TokenExpiredError(SecurityError):
    """Raised when a signed value has expired."""

    pass


class TokenInvalidError(SecurityError):
    """Raised when a signed value is malformed or signed with an unknown secret."""

    pass


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Check a password against its bcrypt hash.

    Accounts without a password hash never match.
    """
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _secrets() -> List[str]:
    configured = settings.security.session_secrets
    if not configured:
        raise SecurityError("No session secrets configured")
    return configured


def sign_value(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Sign `data` as a JWT with the current secret.

    Args:
        data: JSON-serialisable claims
        expires_delta: Optional lifetime; omitted means no `exp` claim

    Returns:
        Encoded token
    """
    now = datetime.now(timezone.utc)
    payload = dict(data)
    payload["iat"] = int(now.timestamp())
    if expires_delta is not None:
        payload["exp"] = int((now + expires_delta).timestamp())

    return jwt.encode(payload, _secrets()[0], algorithm=settings.security.algorithm)


def unsign_value(token: str) -> Dict[str, Any]:
    """Verify a token against every configured secret and return its claims.

    Raises:
        TokenExpiredError: The signature is valid but `exp` has passed
        TokenInvalidError: No secret verifies the token
    """
    for secret in _secrets():
        try:
            return jwt.decode(token, secret, algorithms=[settings.security.algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except InvalidSignatureError:
            continue
        except InvalidTokenError as e:
            raise TokenInvalidError(f"Invalid token: {e}")

    raise TokenInvalidError("Token signature does not match any secret")


def generate_token(nbytes: int = 32) -> str:
    """Random URL-safe token, used for CSRF values."""
    return secrets.token_urlsafe(nbytes)


def generate_verification_code(length: Optional[int] = None) -> str:
    """Numeric one-time code, e.g. "048213"."""
    length = length or settings.security.verification_code_length
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_code(code: str) -> str:
    """SHA-256 of a one-time code for storage."""
    return hashlib.sha256(code.encode()).hexdigest()


def codes_match(code: str, code_hash: str) -> bool:
    return hmac.compare_digest(hash_code(code), code_hash)
