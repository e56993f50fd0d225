"""
tests/test_redirects_admin_api.py -- Admin endpoints for the redirects file.

Covers:
  - download: "[]" before any upload, attachment disposition
  - upload: valid file replaces, backs up, goes live, invalidates the site
  - upload: invalid file is 422 and changes neither the file nor the rules
  - upload: non-UTF-8 bytes are 422
  - reload: picks up the file on disk; a broken file is 422, old rules stay
  - the endpoints sit behind the admin chain
"""

from __future__ import annotations

import json

from conftest import Harness, write_redirects

DOWNLOAD = "/api/v2/admin/redirects/json/"
UPLOAD = "/api/v2/admin/redirects/json/"
RELOAD = "/api/v2/admin/redirects/reload/"


def _upload(h: Harness, content: bytes):
    return h.client.post(
        UPLOAD,
        files={"redirects": ("redirects.json", content, "application/json")},
        headers=h.admin_headers(),
    )


def test_endpoints_require_admin_credentials(harness: Harness) -> None:
    assert harness.client.get(DOWNLOAD).status_code == 403
    assert harness.client.post(RELOAD).status_code == 403


def test_download_without_file_is_empty_array(harness: Harness, redirects_file) -> None:
    assert not redirects_file.exists()
    resp = harness.client.get(DOWNLOAD, headers=harness.admin_headers())
    assert resp.status_code == 200
    assert resp.json() == []
    assert "attachment" in resp.headers["content-disposition"]


def test_valid_upload_replaces_and_goes_live(harness: Harness, redirects_file) -> None:
    first = json.dumps([{"from": "/first", "to": "/one"}]).encode()
    resp = _upload(harness, first)
    assert resp.status_code == 200
    assert resp.json()["rules"] == 1
    assert resp.headers["x-cache-invalidate"] == "/*"
    assert redirects_file.read_bytes() == first

    second = json.dumps([{"from": "/second", "to": "/two", "permanent": True}]).encode()
    assert _upload(harness, second).status_code == 200
    backups = list(redirects_file.parent.glob("redirects-*.json"))
    assert len(backups) == 1
    assert backups[0].read_bytes() == first

    live = harness.client.get("/second")
    assert live.status_code == 301
    assert live.headers["location"] == "/two"
    assert harness.client.get("/first").status_code == 404

    downloaded = harness.client.get(DOWNLOAD, headers=harness.admin_headers())
    assert downloaded.content == second


def test_invalid_upload_changes_nothing(harness: Harness, redirects_file) -> None:
    write_redirects(redirects_file, [{"from": "/kept", "to": "/still-here"}])
    harness.redirects.reload()
    before = redirects_file.read_bytes()

    resp = _upload(harness, json.dumps([{"from": "/x", "to": "/y"}, {"from": "/missing-to"}]).encode())
    assert resp.status_code == 422
    error = resp.json()["errors"][0]
    assert error["errorType"] == "ValidationError"
    assert "x-cache-invalidate" not in resp.headers

    assert redirects_file.read_bytes() == before
    assert harness.client.get("/kept").headers["location"] == "/still-here"


def test_non_utf8_upload_is_rejected(harness: Harness) -> None:
    resp = _upload(harness, b'[{"from": "/\xff", "to": "/b"}]')
    assert resp.status_code == 422


def test_reload_picks_up_file_on_disk(harness: Harness, redirects_file) -> None:
    write_redirects(redirects_file, [{"from": "/disk", "to": "/from-disk"}, {"from": "/x", "to": "/y"}])
    resp = harness.client.post(RELOAD, headers=harness.admin_headers())
    assert resp.status_code == 200
    assert resp.json() == {"rules": 2, "source": str(redirects_file)}
    assert resp.headers["x-cache-invalidate"] == "/*"
    assert harness.client.get("/disk").headers["location"] == "/from-disk"


def test_broken_reload_keeps_serving_old_rules(harness: Harness, redirects_file) -> None:
    write_redirects(redirects_file, [{"from": "/stable", "to": "/ok"}])
    harness.redirects.reload()
    write_redirects(redirects_file, "[{]")

    resp = harness.client.post(RELOAD, headers=harness.admin_headers())
    assert resp.status_code == 422
    assert resp.json()["errors"][0]["errorType"] == "ValidationError"
    assert harness.client.get("/stable").headers["location"] == "/ok"
