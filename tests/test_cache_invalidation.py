"""Unit tests for content/invalidation.py -- the X-Cache-Invalidate decision table."""

import pytest

from content.invalidation import INVALIDATE_ALL, on_add, on_delete, on_edit, preview_path
from content.models import Post

UUID = "0b0c6a5e-4a5b-4a9e-9f52-7d1c7f1d2a10"


def _post(status: str, **overrides) -> Post:
    return Post(title="Title", status=status, uuid=UUID, id="a" * 24, **overrides)


def test_preview_path():
    assert preview_path(_post("draft")) == f"/p/{UUID}/"


@pytest.mark.parametrize(
    "status, expected",
    [("published", INVALIDATE_ALL), ("draft", None), ("scheduled", None)],
)
def test_on_add(status, expected):
    assert on_add(_post(status)) == expected


@pytest.mark.parametrize(
    "before, after, changed, expected",
    [
        ("draft", "published", True, INVALIDATE_ALL),
        ("published", "draft", True, INVALIDATE_ALL),
        ("published", "published", True, INVALIDATE_ALL),
        ("published", "published", False, None),
        ("draft", "draft", True, f"/p/{UUID}/"),
        ("draft", "scheduled", True, f"/p/{UUID}/"),
        ("scheduled", "published", True, INVALIDATE_ALL),
    ],
)
def test_on_edit(before, after, changed, expected):
    assert on_edit(_post(before), _post(after), changed) == expected


@pytest.mark.parametrize(
    "status, expected",
    [("published", INVALIDATE_ALL), ("draft", f"/p/{UUID}/"), ("scheduled", f"/p/{UUID}/")],
)
def test_on_delete(status, expected):
    assert on_delete(_post(status)) == expected
