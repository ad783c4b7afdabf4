"""Security utilities: signed tokens, password hashing, and session tokens."""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import bcrypt
import jwt
from jwt.exceptions import (
    ExpiredSignatureError,
    InvalidSignatureError,
    PyJWTError,
)

from app.core.config import Settings

logger = logging.getLogger(__name__)

# bcrypt only considers the first 72 bytes of a password
BCRYPT_MAX_BYTES = 72


# ---------------------------------------------------------------------------
# Token codec
# ---------------------------------------------------------------------------

class TokenError(Exception):
    """Base class for token verification failures."""


class MalformedTokenError(TokenError):
    """Token could not be parsed (wrong segment count, bad encoding, missing claims)."""


class TokenSignatureError(TokenError):
    """Signature does not match the header and payload."""


class ExpiredTokenError(TokenError):
    pass


class TokenCodec:
    """Issues and verifies HMAC-signed JWTs.

    ``verify`` never lets a PyJWT exception escape: every failure is mapped
    onto one of ``MalformedTokenError``, ``TokenSignatureError`` or
    ``ExpiredTokenError``.
    """

    REQUIRED_CLAIMS = ["sub", "iat", "exp"]

    def __init__(self, secret_key: str, algorithm: str = "HS256", default_ttl: int = 3600):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.default_ttl = default_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        return cls(
            secret_key=settings.secret_key,
            algorithm=settings.algorithm,
            default_ttl=settings.access_token_expire_seconds,
        )

    def issue(
        self,
        claims: dict[str, Any],
        ttl: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Sign ``claims`` with an ``iat``/``exp`` pair ``ttl`` seconds apart."""
        to_encode = claims.copy()
        issued_at = now or datetime.now(timezone.utc)
        lifetime = self.default_ttl if ttl is None else ttl
        to_encode.update({
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=lifetime),
        })
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: Any) -> dict[str, Any]:
        """Return the token's claims or raise a ``TokenError``."""
        if not isinstance(token, str) or token.count(".") != 2:
            raise MalformedTokenError("Token must have three segments")
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": self.REQUIRED_CLAIMS},
                leeway=0,
            )
        except ExpiredSignatureError as e:
            raise ExpiredTokenError("Token has expired") from e
        # InvalidSignatureError subclasses DecodeError, so it must come first
        except InvalidSignatureError as e:
            raise TokenSignatureError("Token signature mismatch") from e
        except PyJWTError as e:
            logger.debug(f"JWT decode error: {e}")
            raise MalformedTokenError(str(e)) from e
        except (ValueError, TypeError) as e:
            raise MalformedTokenError(str(e)) from e


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header, else None."""
    if not auth_header:
        return None
    match = re.match(r"^Bearer\s+(\S+)\s*$", auth_header, flags=re.IGNORECASE)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------

def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hash.

    Uses bcrypt's built-in timing-safe comparison.
    """
    try:
        return bcrypt.checkpw(
            _password_bytes(plain_password),
            hashed_password.encode("utf-8"),
        )
    except Exception as e:
        logger.warning(f"Password verification error: {e}")
        return False


def generate_session_token(nbytes: int = 32) -> str:
    """Generate an opaque session token (hex, ``2 * nbytes`` characters)."""
    return secrets.token_hex(nbytes)


STRENGTH_LABELS = ["Very Weak", "Weak", "Fair", "Good", "Strong"]
MIN_ACCEPTABLE_SCORE = 3


@dataclass(frozen=True)
class PasswordStrength:
    score: int
    missing: List[str] = field(default_factory=list)

    @property
    def acceptable(self) -> bool:
        return self.score >= MIN_ACCEPTABLE_SCORE

    @property
    def label(self) -> str:
        return STRENGTH_LABELS[self.score]


def password_strength(password: str, min_length: int = 8) -> PasswordStrength:
    """Score a password 0..4, one point per satisfied category.

    Categories: length, uppercase, lowercase, digit, symbol. Five categories
    cap at a score of 4, so a password may miss one and still be "Strong".
    Both the registration/password-change gate and the advisory endpoint
    call this function.
    """
    checks = [
        (len(password) >= min_length, f"at least {min_length} characters"),
        (re.search(r"[A-Z]", password) is not None, "uppercase letters"),
        (re.search(r"[a-z]", password) is not None, "lowercase letters"),
        (re.search(r"\d", password) is not None, "numbers"),
        (re.search(r"[^A-Za-z0-9]", password) is not None, "special characters"),
    ]
    points = sum(1 for passed, _ in checks if passed)
    missing = [name for passed, name in checks if not passed]
    return PasswordStrength(score=min(points, 4), missing=missing)
