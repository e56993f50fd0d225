"""
auth/dependencies.py -- FastAPI Depends() gates for authentication and authorization.

Authenticators populate request.state and only fail on credentials that are
present but wrong:
  authenticate_admin_api_key -- Authorization: Bearer <jwt with kid header>
  authenticate_user          -- access_token cookie or Bearer session JWT
  authenticate_client        -- client_id + client_secret (query or X-Client-* headers)

Authorizers fail when the request state lacks what the route needs:
  requires_authorized_user_or_api_key
  requires_authorized_client(slug)

Chains compose these in order (see api/routes/v2/chains.py). Every failure is
an HTTPException whose detail is {"type", "message"}; api/main.py wraps it in
the {"errors": [...]} envelope.

Layer rule: no imports from api/, content/, or redirects/.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

from fastapi import HTTPException, Request

from auth.models import ApiKey, Client, User
from auth.tokens import (
    InvalidTokenError,
    MalformedTokenError,
    client_secret_matches,
    decode_access_token,
    get_token_key_id,
    verify_admin_api_token,
)


def _error(status_code: int, kind: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"type": kind, "message": message})


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def current_user(request: Request) -> Optional[User]:
    return getattr(request.state, "user", None)


def current_api_key(request: Request) -> Optional[ApiKey]:
    return getattr(request.state, "api_key", None)


def current_client(request: Request) -> Optional[Client]:
    return getattr(request.state, "client", None)


# ---------------------------------------------------------------------------
# Authenticators
# ---------------------------------------------------------------------------


def authenticate_admin_api_key(request: Request) -> None:
    """Verify an admin API key token when one is presented.

    A Bearer JWT without a "kid" header is a session token and is left for
    authenticate_user().
    """
    token = _bearer_token(request)
    if token is None:
        return
    try:
        key_id = get_token_key_id(token)
    except MalformedTokenError as exc:
        raise _error(400, "BadRequestError", "Invalid token: could not decode the JWT.") from exc
    if key_id is None:
        return

    user_store = request.app.state.user_store
    api_key = user_store.get_api_key(key_id)
    if api_key is None:
        raise _error(401, "UnauthorizedError", "Unknown Admin API Key.")
    try:
        verify_admin_api_token(token, api_key, request.url.path)
    except InvalidTokenError as exc:
        raise _error(401, "UnauthorizedError", str(exc)) from exc

    user_store.update_api_key_last_used(api_key.id)
    request.state.api_key = api_key


def authenticate_user(request: Request) -> None:
    """Attach the signed-in staff user, if any. Never fails on its own."""
    if current_api_key(request) is not None:
        return
    token = request.cookies.get("access_token") or _bearer_token(request)
    if not token:
        return
    payload = decode_access_token(token)
    if payload is None:
        return
    user = request.app.state.user_store.get_by_id(payload["user_id"])
    if user is not None and user.is_active:
        request.state.user = user


def authenticate_client(request: Request) -> None:
    """Attach the calling client when client credentials are presented.

    Missing credentials fall through (requires_authorized_client decides);
    wrong or disabled credentials fail with 401.
    """
    client_id = request.query_params.get("client_id") or request.headers.get("X-Client-Id")
    client_secret = request.query_params.get("client_secret") or request.headers.get("X-Client-Secret")
    if not client_id or not client_secret:
        return

    client = request.app.state.user_store.get_client_by_slug(client_id)
    if client is None or client.status != "enabled" or not client_secret_matches(client.secret, client_secret):
        raise _error(401, "UnauthorizedError", "Access denied: invalid client credentials.")
    request.state.client = client


# ---------------------------------------------------------------------------
# Authorizers
# ---------------------------------------------------------------------------


def requires_authorized_user_or_api_key(request: Request) -> None:
    """Let the request through when a staff user or an admin API key authenticated it."""
    if current_user(request) is None and current_api_key(request) is None:
        raise _error(403, "NoPermissionError", "Please sign in or authenticate with an API Key.")


def requires_authorized_client(client_slug: str) -> Callable[[Request], None]:
    """Build a gate that only admits requests authenticated as client_slug."""

    def _requires_client(request: Request) -> None:
        client = current_client(request)
        if client is None or client.slug != client_slug:
            raise _error(403, "NoPermissionError", "Access denied for this client.")

    _requires_client.__name__ = f"requires_authorized_client_{client_slug.replace('-', '_')}"
    return _requires_client
