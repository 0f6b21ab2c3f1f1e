"""
auth/tokens.py -- JWT and password hashing utilities.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens share one structure
       -- claims {uid, iat, exp, jti} -- and differ only in TTL. jti is a
       random nonce: without it two tokens minted for the same user in the
       same second would be byte-identical, and refresh rotation could hand
       back the token it was meant to replace.

       parse_token() raises InvalidToken on any failure (bad signature,
       expired, malformed claims). Callers never see jose exceptions.

  Passwords: bcrypt used directly (no passlib wrapper). The _DUMMY_HASH
       constant enables timing equalization in the login workflow so response
       time does not reveal whether an email exists.

The signing secret and TTLs are passed in explicitly; this module never reads
settings, which keeps the functions pure and trivially testable.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from core.errors import InvalidToken

logger = logging.getLogger("teamgate.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError past 72 UTF-8 bytes instead of letting bcrypt truncate
    (older releases) or fail (newer ones) depending on the installed version.
    """
    raw = plain.encode("utf-8")
    if len(raw) > 72:
        raise ValueError("password exceeds 72 bytes")
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")


def verify_password(hashed: str, plain: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash -- treat as a mismatch, never as a match.
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("teamgate_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison against a throwaway hash (timing equalization)."""
    verify_password(_DUMMY_HASH, plain)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims recovered from a token."""

    uid: int
    issued_at: datetime
    expires_at: datetime
    jti: str


def issue_access_token(user_id: int, secret: str, ttl: timedelta) -> str:
    """Sign a short-lived access token for user_id. exp = now + ttl."""
    now = datetime.now(timezone.utc)
    payload = {
        "uid": user_id,
        "iat": now,
        "exp": now + ttl,
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def issue_refresh_token(user_id: int, secret: str, refresh_ttl: timedelta) -> str:
    """Sign a refresh token: same scheme as the access token, longer TTL."""
    return issue_access_token(user_id, secret, refresh_ttl)


def parse_token(token: str, secret: str) -> TokenClaims:
    """Verify signature and expiry and return the claims.

    Raises InvalidToken if the signature is wrong, the token is expired, or
    the uid / iat / exp claims are missing or malformed.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError as exc:
        raise InvalidToken() from exc

    uid = payload.get("uid")
    iat = payload.get("iat")
    exp = payload.get("exp")
    # bool is an int subclass; a uid of True is not a user id.
    if not isinstance(uid, int) or isinstance(uid, bool):
        raise InvalidToken()
    if not isinstance(iat, (int, float)) or not isinstance(exp, (int, float)):
        raise InvalidToken()
    return TokenClaims(
        uid=uid,
        issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        jti=str(payload.get("jti", "")),
    )
