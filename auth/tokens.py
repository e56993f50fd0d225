"""
auth/tokens.py -- JWT, password hashing, API key and client secret utilities.

Security design decisions:
  Session JWT: python-jose with HS256, signed with SECRET_KEY, carrying
       user_id, username, role and expiry. Verification returns None on any
       failure -- the dependency layer turns that into a 401.

  Admin API key JWT: integrations sign their own short-lived tokens with the
       key secret (hex-decoded), put the key id in the "kid" header and the
       admin API path in "aud". Tokens may live at most five minutes.
       Undecodable tokens raise MalformedTokenError (400); well-formed tokens
       that fail verification raise InvalidTokenError (401).

  Passwords: bcrypt directly. _DUMMY_HASH equalizes timing in
       authenticate_user() so response time does not reveal whether a
       username exists.

Layer rule: no imports from api/, content/, or redirects/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hmac
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import ApiKey, User
    from auth.store import UserStore

logger = logging.getLogger("inkpost.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# Longest lifetime (exp - iat) accepted on an admin API key token.
MAX_API_TOKEN_LIFETIME_S = 5 * 60

# Audience must address the admin API of some version, e.g. "/v2/admin/".
_ADMIN_AUDIENCE = re.compile(r"/v\d+/admin/?$")


class MalformedTokenError(Exception):
    """The Authorization value is not a decodable JWT."""


class InvalidTokenError(Exception):
    """The JWT decodes but does not verify (signature, audience, expiry)."""


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("inkpost_timing_dummy")


# ---------------------------------------------------------------------------
# Session JWT
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, username: str, role: str, expire_seconds: int = 0) -> str:
    """Encode a signed session JWT. expire_seconds=0 uses Settings.token_expire_seconds."""
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": username,
        "user_id": user_id,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a session JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
        if "user_id" not in payload or "role" not in payload:
            return None
        return payload
    except JWTError:
        return None


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Authenticate a username/password login with timing equalization.

    Always runs bcrypt whether or not the user exists.
    """
    user = store.get_by_username(username)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


# ---------------------------------------------------------------------------
# Admin API key tokens
# ---------------------------------------------------------------------------


def generate_api_key_id() -> str:
    return secrets.token_hex(12)


def generate_api_key_secret() -> str:
    """64 hex chars -- 256 bits of HMAC key material once hex-decoded."""
    return secrets.token_hex(32)


def get_token_key_id(token: str) -> str | None:
    """Return the "kid" header of token, None when the JWT carries no kid.

    Raises MalformedTokenError when token is not a JWT at all.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise MalformedTokenError("Invalid JWT format.") from exc
    kid = header.get("kid")
    return str(kid) if kid else None


def create_admin_api_token(api_key: ApiKey, audience: str = "/v2/admin/", lifetime_s: int = MAX_API_TOKEN_LIFETIME_S) -> str:
    """Sign a token the way an integration would, for the given key and audience."""
    now = datetime.now(timezone.utc)
    claims = {
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=lifetime_s)).timestamp()),
        "aud": audience,
    }
    return jwt.encode(claims, bytes.fromhex(api_key.secret), algorithm=_ALGORITHM, headers={"kid": api_key.id})


def verify_admin_api_token(token: str, api_key: ApiKey, request_path: str) -> dict:
    """Verify signature, audience and lifetime of an admin API key token.

    The audience may name the admin API root ("/v2/admin/") or the exact
    request path. Raises InvalidTokenError on any failure.
    """
    try:
        payload = jwt.decode(
            token,
            bytes.fromhex(api_key.secret),
            algorithms=[_ALGORITHM],
            options={"verify_aud": False},
        )
    except ExpiredSignatureError as exc:
        raise InvalidTokenError("Token has expired.") from exc
    except JWTError as exc:
        raise InvalidTokenError("Invalid token signature.") from exc

    audiences = payload.get("aud")
    if isinstance(audiences, str):
        audiences = [audiences]
    if not audiences or not any(_audience_ok(a, request_path) for a in audiences):
        logger.warning("Admin API key %s: token audience %r rejected for %s", api_key.id, audiences, request_path)
        raise InvalidTokenError("Invalid token audience.")

    iat, exp = payload.get("iat"), payload.get("exp")
    if not isinstance(iat, (int, float)) or not isinstance(exp, (int, float)):
        raise InvalidTokenError("Token must carry iat and exp claims.")
    if exp - iat > MAX_API_TOKEN_LIFETIME_S:
        logger.warning("Admin API key %s: token lifetime %ss exceeds the limit", api_key.id, exp - iat)
        raise InvalidTokenError("Token lifetime may not exceed 5 minutes.")
    return payload


def _audience_ok(audience: object, request_path: str) -> bool:
    if not isinstance(audience, str):
        return False
    return audience == request_path or bool(_ADMIN_AUDIENCE.search(audience))


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


def generate_client_secret() -> str:
    return secrets.token_hex(16)


def client_secret_matches(expected: str, presented: str) -> bool:
    """Constant-time comparison of client secrets."""
    return hmac.compare_digest(expected.encode(), presented.encode())


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session JWT as an httpOnly cookie on the response."""
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
