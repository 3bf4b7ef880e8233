"""
auth/tokens.py -- JWT issue/verify, password hashing, and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Two token classes, two secrets [S1]:
       access  -- {user_id, email, role, type="access"}, 15 minutes,
                  signed with ACCESS_TOKEN_SECRET.
       refresh -- {user_id, type="refresh"}, 7 days,
                  signed with REFRESH_TOKEN_SECRET.
       The refresh token carries no role: roles can change, so the refresh
       endpoint re-reads the current identity from the store. The "type"
       claim is a second fence behind the separate secrets -- a token of one
       class never verifies as the other even if the secrets were mis-set.

       Verification returns None on any failure (bad signature, malformed,
       wrong type, missing claims, expired). Callers cannot tell expired from
       forged; neither can clients.

  Passwords: bcrypt directly (salted, adaptive cost, constant-time compare).
       _DUMMY_HASH lets authenticate() run bcrypt even for unknown emails so
       response time does not reveal whether an account exists [C1].

  Refresh cookie: HttpOnly (no JS access), SameSite=strict (never sent on
       cross-site requests), Secure when SECURE_COOKIES=true, path "/",
       max-age equal to the refresh token lifetime.

Layer rule: no imports from api/ or client/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

import bcrypt
from jose import JWTError, jwt

from auth.models import Credential, Identity
from core.config import get_settings

if TYPE_CHECKING:
    from auth.store import CredentialStore

logger = logging.getLogger("segregate.auth")

_ALGORITHM = "HS256"
_ACCESS = "access"
_REFRESH = "refresh"

REFRESH_COOKIE = "refreshToken"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only reads the first 72 bytes. The API layer caps passwords at 255
    characters; anything past byte 72 is ignored by the hash.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store -- treat as a mismatch, never as a match.
        logger.warning("Stored password hash could not be parsed")
        return False


# Computed once at import so the first login is not measurably slower [C1].
_DUMMY_HASH: str = hash_password("segregate_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def _encode(claims: dict, secret: str, lifetime: int, now: Optional[datetime]) -> str:
    issued = now or datetime.now(timezone.utc)
    payload = {**claims, "iat": issued, "exp": issued + timedelta(seconds=lifetime)}
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def _decode(token: str, secret: str, token_type: str) -> dict | None:
    if not token:
        return None
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != token_type:
        return None
    # bool is an int subclass; reject it explicitly.
    user_id = payload.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return None
    return payload


def issue_access_token(user_id: int, email: str, role: str, now: Optional[datetime] = None) -> str:
    """Encode a signed access token (15 minutes by default).

    Args:
        user_id: Credential primary key.
        email:   Account email, carried so downstream handlers need no lookup.
        role:    Role at issuance. Stale for at most one access-token lifetime.
        now:     Issuance instant; defaults to the current UTC time.
    """
    settings = get_settings()
    return _encode(
        {"user_id": user_id, "email": email, "role": role, "type": _ACCESS},
        settings.access_token_secret,
        settings.access_token_expire_seconds,
        now,
    )


def issue_refresh_token(user_id: int, now: Optional[datetime] = None) -> str:
    """Encode a signed refresh token (7 days by default) carrying only user_id."""
    settings = get_settings()
    return _encode(
        {"user_id": user_id, "type": _REFRESH},
        settings.refresh_token_secret,
        settings.refresh_token_expire_seconds,
        now,
    )


def verify_access_token(token: str) -> Identity | None:
    """Return the Identity carried by a valid access token, or None."""
    payload = _decode(token, get_settings().access_token_secret, _ACCESS)
    if payload is None:
        return None
    email, role = payload.get("email"), payload.get("role")
    if not isinstance(email, str) or not isinstance(role, str):
        return None
    return Identity(user_id=payload["user_id"], email=email, role=role)


def verify_refresh_token(token: str) -> int | None:
    """Return the user id carried by a valid refresh token, or None."""
    payload = _decode(token, get_settings().refresh_token_secret, _REFRESH)
    return payload["user_id"] if payload is not None else None


def extract_bearer_token(header: Optional[str]) -> str | None:
    """Return the token from an "Authorization: Bearer <token>" header value.

    The scheme is case-sensitive and must be followed by exactly one space and
    a non-empty token. Anything else is treated as no token at all.
    """
    if not header or not header.startswith("Bearer "):
        return None
    token = header[len("Bearer ") :].strip()
    return token or None


# ---------------------------------------------------------------------------
# Credential authentication (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate(store: CredentialStore, email: str, password: str) -> Credential | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as a real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the Credential on success, None on any failure.
    """
    credential = store.find_by_email(email)
    if credential is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, credential.hashed_password):
        return None
    return credential


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response, token: str) -> None:
    """Write the refresh token as an HttpOnly, SameSite=strict cookie on the response."""
    settings = get_settings()
    response.set_cookie(
        REFRESH_COOKIE,
        value=token,
        max_age=settings.refresh_token_expire_seconds,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
    )


def clear_refresh_cookie(response) -> None:
    """Expire the refresh cookie. Attributes must match set_refresh_cookie()."""
    settings = get_settings()
    response.delete_cookie(
        REFRESH_COOKIE,
        path="/",
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
    )
