"""
api/routes/v2/chains.py -- Ordered auth dependency chains for the v2 API.

CORS, admin_redirect and pretty_urls run as app-level middleware (see
api/main.py); the gates below run per route, in list order, after routing.

  PRIVATE -- admin API: admin API key, then staff session, then require either
  authenticate_client(slug) -- client API: client credentials, then staff
             session, then require that exact client
"""

from fastapi import Depends

from auth.dependencies import (
    authenticate_admin_api_key,
    authenticate_client as _authenticate_client,
    authenticate_user,
    requires_authorized_client,
    requires_authorized_user_or_api_key,
)

FRONTEND_CLIENT = "ghost-frontend"

PRIVATE = [
    Depends(authenticate_admin_api_key),
    Depends(authenticate_user),
    Depends(requires_authorized_user_or_api_key),
]


def authenticate_client(client_slug: str) -> list:
    """Dependency chain admitting only requests authenticated as client_slug."""
    return [
        Depends(_authenticate_client),
        Depends(authenticate_user),
        Depends(requires_authorized_client(client_slug)),
    ]
