"""
redirects/router.py -- Match request paths against the active rule set.

The router is the one stable handle the site pipeline holds. Its active
CompiledRuleSet is replaced through swap(); callers never re-mount the
router. Each match reads the rule-set reference exactly once, so a request
sees either the old set or the new one, never a mixture.

Matching is a pure read: no locks, no I/O, no state changes.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import quote, urlsplit

from fastapi import Request
from fastapi.responses import RedirectResponse

from redirects.models import EMPTY_RULE_SET, CompiledRuleSet, RedirectResult

# Methods a redirect rule answers. Everything else falls through untouched.
_REDIRECT_METHODS = ("GET", "HEAD")

# $1..$99 capture references, $& whole match, $$ literal dollar.
_TEMPLATE_REF = re.compile(r"\$(\$|&|\d{1,2})")

# Anchor normalize_pattern() gives slash-insensitive rules.
_OPTIONAL_SLASH = "/?$"


def expand_destination(template: str, match: re.Match) -> str:
    """Substitute capture-group references in template from match.

    A reference to a group the pattern does not have is left as written.
    Two-digit references fall back to one digit plus a literal when only the
    first digit names a group ("$10" with one group -> group 1 + "0").
    """
    groups = match.re.groups

    def _ref(ref: re.Match) -> str:
        token = ref.group(1)
        if token == "$":
            return "$"
        if token == "&":
            return match.group(0)
        number = int(token)
        if 0 < number <= groups:
            return match.group(number) or ""
        if len(token) == 2 and 0 < int(token[0]) <= groups:
            return (match.group(int(token[0])) or "") + token[1]
        return ref.group(0)

    return _TEMPLATE_REF.sub(_ref, template)


def follow_trailing_slash(destination: str, request_path: str) -> str:
    """Drop the destination's trailing slash when the request had none.

    "/old-page" and "/old-page/" both match a rule from "/old-page/"; each
    keeps its own style at the target. Only applied to rules whose pattern
    ends in the optional-slash anchor "/?$". Destinations carrying a query or
    fragment, and the bare root "/", are returned as given.
    """
    if request_path.endswith("/") or not destination.endswith("/"):
        return destination
    if "?" in destination or "#" in destination:
        return destination
    if len(urlsplit(destination).path) <= 1:
        return destination
    return destination[:-1]


def append_query(location: str, query: str) -> str:
    if not query:
        return location
    separator = "&" if "?" in location else "?"
    return f"{location}{separator}{query}"


class RedirectRouter:
    """Holds the active CompiledRuleSet and turns matches into responses."""

    def __init__(self, rule_set: CompiledRuleSet = EMPTY_RULE_SET, max_age: int = 0) -> None:
        self._rule_set = rule_set
        self.max_age = max_age

    @property
    def rule_set(self) -> CompiledRuleSet:
        return self._rule_set

    def swap(self, rule_set: CompiledRuleSet) -> CompiledRuleSet:
        """Publish rule_set and return the one it replaced.

        A single attribute assignment: readers that already grabbed the old
        reference finish against it undisturbed.
        """
        previous = self._rule_set
        self._rule_set = rule_set
        return previous

    def match(self, request_path: str, original_url: str) -> Optional[RedirectResult]:
        """Return the redirect for request_path, or None to pass through.

        original_url is the path plus query string as the client sent it; its
        query string is carried over to the destination unchanged.
        """
        rule_set = self._rule_set
        for rule in rule_set.rules:
            found = rule.matcher.search(request_path)
            if found is None:
                continue
            destination = expand_destination(rule.to, found)
            if rule.from_pattern.endswith(_OPTIONAL_SLASH):
                destination = follow_trailing_slash(destination, request_path)
            location = append_query(destination, urlsplit(original_url).query)
            max_age = self.max_age if rule.permanent else 0
            return RedirectResult(
                status_code=rule.status_code,
                location=location,
                cache_control=f"public, max-age={max_age}",
                rule=rule,
            )
        return None

    def handle(self, request: Request) -> Optional[RedirectResponse]:
        """Answer request with a redirect, or None when the next handler should run."""
        if request.method not in _REDIRECT_METHODS:
            return None
        # Read the scope directly: request.url re-parses the decoded path, so an
        # encoded "%3F" would turn into a query delimiter.
        path = request.scope["path"]
        query = request.scope.get("query_string", b"").decode("latin-1")
        original_url = f"{quote(path)}?{query}" if query else quote(path)
        result = self.match(path, original_url)
        if result is None:
            return None
        return RedirectResponse(
            result.location,
            status_code=result.status_code,
            headers={"Cache-Control": result.cache_control},
        )
