"""
tests/conftest.py -- Shared test fixtures for Inkpost integration tests.

This module provides:
  - _make_test_stores(): isolated in-memory DBs for auth + posts
  - _seed(): one staff user, one admin API key, the frontend client
  - _patch_lifespan(): wires test stores and a redirect service into app.state
  - harness: module-scoped TestClient plus the credentials to drive it
  - write_redirects(): helper to put a redirects.json in place

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import json
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.routes.v2.chains import FRONTEND_CLIENT
from asgi import app
from auth.models import ApiKey, Client, User
from auth.store import UserStore
from auth.tokens import (
    create_access_token,
    create_admin_api_token,
    generate_api_key_id,
    generate_api_key_secret,
    generate_client_secret,
    hash_password,
)
from content.store import PostStore
from redirects.service import RedirectService

REDIRECT_MAX_AGE = 31536000


def write_redirects(path: Path, rules) -> Path:
    """Write rules (a list, or raw text) as the redirects file at path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(rules if isinstance(rules, str) else json.dumps(rules), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, PostStore]:
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    posts_url = f"sqlite:///file:test_posts_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), PostStore(db_url=posts_url)


@dataclass
class Harness:
    """A running TestClient and everything needed to authenticate against it."""

    client: TestClient
    user_id: int
    session_token: str
    api_key: ApiKey
    client_secret: str
    redirects: RedirectService
    user_store: UserStore
    post_store: PostStore

    def admin_headers(self, audience: str = "/v2/admin/") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_admin_api_token(self.api_key, audience=audience)}"}

    def session_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.session_token}"}

    def client_params(self) -> dict[str, str]:
        return {"client_id": FRONTEND_CLIENT, "client_secret": self.client_secret}


def _seed(user_store: UserStore) -> tuple[int, str, ApiKey, str]:
    uid = user_store.create_user(
        User(username="owner", hashed_password=hash_password("ownerpass123"), role="owner")
    )
    token = create_access_token(user_id=uid, username="owner", role="owner", expire_seconds=3600)

    api_key = ApiKey(id=generate_api_key_id(), secret=generate_api_key_secret(), integration="Test Integration")
    user_store.create_api_key(api_key)

    client_secret = generate_client_secret()
    user_store.create_client(Client(slug=FRONTEND_CLIENT, name="Ghost Frontend", secret=client_secret))
    return uid, token, api_key, client_secret


def _patch_lifespan(user_store: UserStore, post_store: PostStore, redirects: RedirectService):
    """Replace the real lifespan: same load order, test stores."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.post_store = post_store
        app.state.redirects = redirects
        redirects.load()
        yield
        redirects.close()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def redirects_file(tmp_path_factory) -> Path:
    """Path of the redirects file the module's harness serves (may not exist yet)."""
    return tmp_path_factory.mktemp("content") / "data" / "redirects.json"


@pytest.fixture(scope="module")
def harness(request, redirects_file: Path) -> Generator[Harness, None, None]:
    """Yield a Harness around the real app with isolated stores.

    follow_redirects=False: tests assert on redirect Location headers, which
    are invisible once the client follows them. A module may define a
    module-level REDIRECT_RULES list to boot with that redirects file.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, post_store = _make_test_stores(suffix)
    uid, token, api_key, client_secret = _seed(user_store)

    rules = getattr(request.module, "REDIRECT_RULES", None)
    if rules is not None:
        write_redirects(redirects_file, rules)
    service = RedirectService(redirects_file, max_age=REDIRECT_MAX_AGE)

    app.router.lifespan_context = _patch_lifespan(user_store, post_store, service)
    limiter.reset()

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield Harness(
            client=client,
            user_id=uid,
            session_token=token,
            api_key=api_key,
            client_secret=client_secret,
            redirects=service,
            user_store=user_store,
            post_store=post_store,
        )

    user_store.close()
    post_store.close()
