"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and
dependencies do the work.

Layer rule: no imports from api/, content/, or redirects/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class User:
    """A staff member who can sign in to the admin API.

    role is one of "owner", "administrator", "editor", "author", "contributor".
    """

    username: str
    role: str
    id: Optional[int] = None
    hashed_password: Optional[str] = None
    created_at: Optional[str] = None
    last_login: Optional[str] = None
    is_active: bool = True


@dataclass
class ApiKey:
    """An admin API key belonging to an integration.

    Requests authenticate with a short-lived JWT signed by the key:
      header kid = key id, HS256 with bytes.fromhex(secret).

    The secret has to stay recoverable to verify signatures, so it is stored
    as issued (unlike session passwords). The key id is public; the secret is
    shown to the integration owner once at creation.
    """

    id: str  # 24 hex chars, the JWT "kid"
    secret: str  # 64 hex chars
    integration: str
    role: str = "administrator"
    created_at: Optional[str] = None
    last_used: Optional[str] = None
    is_active: bool = True


@dataclass
class Client:
    """A first-party application (admin client, frontend) identified by slug.

    requires_authorized_client(slug) compares against this slug.
    """

    slug: str
    name: str
    secret: str
    id: Optional[int] = None
    status: str = "enabled"  # "enabled" | "disabled"
