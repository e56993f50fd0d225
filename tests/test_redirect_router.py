"""Unit tests for redirects/router.py -- matching and destination building.

Covers:
- first match wins in declaration order
- capture-group expansion ($1, $&, $$) and literal destinations
- query string carried over unchanged
- status code and Cache-Control per permanence
- swap() publishes a new rule set without re-creating the router
- handle(): only GET and HEAD redirect
"""

import re

import pytest
from starlette.requests import Request

from redirects.compiler import compile_rules
from redirects.models import EMPTY_RULE_SET
from redirects.router import RedirectRouter, append_query, expand_destination, follow_trailing_slash

MAX_AGE = 31536000


def _router(rules, max_age=MAX_AGE) -> RedirectRouter:
    return RedirectRouter(compile_rules(rules), max_age=max_age)


def _request(method: str, path: str, query: str = "") -> Request:
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "raw_path": path.encode(),
        "query_string": query.encode(),
        "headers": [],
        "scheme": "http",
        "server": ("testserver", 80),
    }
    return Request(scope)


# ---------------------------------------------------------------------------
# Destination helpers
# ---------------------------------------------------------------------------


class TestExpandDestination:
    def test_numbered_groups(self):
        m = re.search(r"^/blog/(\d{4})/(.+)$", "/blog/2019/hello")
        assert expand_destination("/archive/$1/$2/", m) == "/archive/2019/hello/"

    def test_whole_match_and_literal_dollar(self):
        m = re.search(r"/price", "/price")
        assert expand_destination("/cost?was=$&&unit=$$", m) == "/cost?was=/price&unit=$"

    def test_reference_to_missing_group_is_kept(self):
        m = re.search(r"/(a)", "/a")
        assert expand_destination("/x/$2", m) == "/x/$2"

    def test_two_digit_reference_falls_back_to_one_digit(self):
        m = re.search(r"/(a)", "/a")
        assert expand_destination("/x/$10", m) == "/x/a0"

    def test_unmatched_optional_group_is_empty(self):
        m = re.search(r"/a(b)?", "/a")
        assert expand_destination("/x$1", m) == "/x"


def test_append_query():
    assert append_query("/new", "") == "/new"
    assert append_query("/new", "x=1") == "/new?x=1"
    assert append_query("/new?a=b", "x=1") == "/new?a=b&x=1"


@pytest.mark.parametrize(
    "destination, request_path, expected",
    [
        ("/new-page/", "/old-page", "/new-page"),
        ("/new-page/", "/old-page/", "/new-page/"),
        ("/new-page", "/old-page/", "/new-page"),
        ("/", "/old-page", "/"),
        ("/search/?q=a", "/find", "/search/?q=a"),
    ],
)
def test_follow_trailing_slash(destination, request_path, expected):
    assert follow_trailing_slash(destination, request_path) == expected


# ---------------------------------------------------------------------------
# match()
# ---------------------------------------------------------------------------


def test_first_match_wins():
    router = _router(
        [
            {"from": "^/shop/(.*)$", "to": "/store/$1"},
            {"from": "/shop/shoes", "to": "/footwear"},
        ]
    )
    result = router.match("/shop/shoes", "/shop/shoes")
    assert result.location == "/store/shoes"
    assert result.rule.to == "/store/$1"


def test_rule_without_groups_yields_literal_destination():
    router = _router([{"from": "/gone", "to": "/somewhere-else"}])
    assert router.match("/deeper/gone", "/deeper/gone").location == "/somewhere-else"
    assert router.match("/gone", "/gone").location == "/somewhere-else"


def test_query_string_is_preserved():
    router = _router([{"from": "/old-page/", "to": "/new-page/", "permanent": True}])
    assert router.match("/old-page/", "/old-page/?x=1&y=2").location == "/new-page/?x=1&y=2"


def test_matching_ignores_the_query_string():
    router = _router([{"from": "^/search$", "to": "/find"}])
    assert router.match("/search", "/search?q=x").location == "/find?q=x"


def test_permanent_rule_is_301_with_configured_max_age():
    result = _router([{"from": "/a", "to": "/b", "permanent": True}]).match("/a", "/a")
    assert result.status_code == 301
    assert result.cache_control == f"public, max-age={MAX_AGE}"


def test_temporary_rule_is_302_never_cached():
    result = _router([{"from": "/a", "to": "/b"}]).match("/a", "/a")
    assert result.status_code == 302
    assert result.cache_control == "public, max-age=0"


def test_no_match_passes_through():
    assert _router([{"from": "/a", "to": "/b"}]).match("/unrelated", "/unrelated") is None
    assert RedirectRouter().match("/anything", "/anything") is None


def test_swap_replaces_rules_in_place():
    router = _router([{"from": "/a", "to": "/old"}])
    new_set = compile_rules([{"from": "/a", "to": "/new"}])
    previous = router.swap(new_set)
    assert previous.rules[0].to == "/old"
    assert router.rule_set is new_set
    assert router.match("/a", "/a").location == "/new"
    router.swap(EMPTY_RULE_SET)
    assert router.match("/a", "/a") is None


# ---------------------------------------------------------------------------
# handle()
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("method", ["GET", "HEAD"])
def test_handle_redirects_safe_methods(method):
    router = _router([{"from": "/a", "to": "/b", "permanent": True}])
    response = router.handle(_request(method, "/a", "ref=x"))
    assert response.status_code == 301
    assert response.headers["location"] == "/b?ref=x"
    assert response.headers["cache-control"] == f"public, max-age={MAX_AGE}"


@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
def test_handle_ignores_unsafe_methods(method):
    router = _router([{"from": "/a", "to": "/b"}])
    assert router.handle(_request(method, "/a")) is None


def test_anchored_rule_keeps_destination_slash():
    router = _router([{"from": "^/blog/(\\d{4})/(.+)$", "to": "/archive/$1/$2/"}])
    assert router.match("/blog/2019/hello", "/blog/2019/hello").location == "/archive/2019/hello/"


def test_slash_insensitive_rule_follows_request_slash():
    router = _router([{"from": "/old-page/", "to": "/new-page/"}])
    assert router.match("/old-page", "/old-page").location == "/new-page"
    assert router.match("/old-page/", "/old-page/").location == "/new-page/"


def test_handle_matches_the_decoded_path_not_a_reparsed_url():
    router = _router([{"from": "/old-page/", "to": "/new-page/", "permanent": True}])
    # "/old-page%3Fa" arrives with "?" decoded into the scope path.
    assert router.handle(_request("GET", "/old-page?a")) is None
    response = router.handle(_request("GET", "/old-page", "a=1"))
    assert response.headers["location"] == "/new-page?a=1"
