"""
tests/test_session.py -- Staff sign-in and sign-out.

Kept in its own module: the TestClient keeps cookies, and a signed-in
client would satisfy the admin chain for every later test.

Covers:
  - POST /session/ with good credentials: 201, token, httpOnly cookie
  - the cookie alone authenticates admin requests
  - wrong password and unknown user: same 401 error
  - DELETE /session/: 204 and the cookie is cleared
"""

from __future__ import annotations

from conftest import Harness

SESSION = "/api/v2/admin/session/"
POSTS = "/api/v2/admin/posts/"


def test_wrong_password_is_unauthorized(harness: Harness) -> None:
    resp = harness.client.post(SESSION, json={"username": "owner", "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.json()["errors"][0]["errorType"] == "UnauthorizedError"
    assert "access_token" not in resp.cookies


def test_unknown_user_gets_the_same_error(harness: Harness) -> None:
    wrong_password = harness.client.post(SESSION, json={"username": "owner", "password": "nope"})
    unknown_user = harness.client.post(SESSION, json={"username": "nobody", "password": "nope"})
    assert unknown_user.status_code == 401
    assert unknown_user.json() == wrong_password.json()


def test_missing_fields_are_validation_errors(harness: Harness) -> None:
    resp = harness.client.post(SESSION, json={"username": "owner"})
    assert resp.status_code == 422
    assert resp.json()["errors"][0]["context"] == "body.password"


def test_login_sets_cookie_and_logout_clears_it(harness: Harness) -> None:
    resp = harness.client.post(SESSION, json={"username": "owner", "password": "ownerpass123"})
    assert resp.status_code == 201
    data = resp.json()
    assert data["username"] == "owner"
    assert data["role"] == "owner"
    assert data["access_token"]
    set_cookie = resp.headers["set-cookie"]
    assert "access_token=" in set_cookie
    assert "HttpOnly" in set_cookie
    assert harness.user_store.get_by_id(harness.user_id).last_login is not None

    # The client now carries the cookie.
    assert harness.client.get(POSTS).status_code == 200

    out = harness.client.delete(SESSION)
    assert out.status_code == 204
    harness.client.cookies.clear()
    assert harness.client.get(POSTS).status_code == 403
