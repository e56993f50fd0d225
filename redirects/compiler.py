"""
redirects/compiler.py -- Turn a redirects.json document into a CompiledRuleSet.

Document format (one object per rule, declaration order is match order):

    [
      {"from": "/old-page/", "to": "/new-page/", "permanent": true},
      {"from": "^/tag/([a-z-]+)/$", "to": "/topic/$1/"}
    ]

Compilation happens in two passes:
  1. Structural validation of the whole document (pydantic TypeAdapter).
     The first violation is reported with its rule index and field name;
     no rule is compiled when any entry is invalid.
  2. Per-rule normalization + re.compile. An uncompilable pattern rejects the
     whole document and names the offending rule.

A missing file is not an error: redirects are opt-in, so the result is an
empty rule set. Everything else that goes wrong raises RedirectConfigError,
which callers (redirects/service.py) turn into a logged warning.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, TypeAdapter, ValidationError

from redirects.models import CompiledRuleSet, RedirectRule

logger = logging.getLogger("inkpost.redirects")

HELP_URL = "https://docs.ghost.org/docs/redirects"


class RedirectConfigError(Exception):
    """The redirects document exists but cannot be turned into rules.

    index and field point at the offending rule when the problem is local to
    one entry; both are None for document-level failures (unreadable file,
    invalid JSON, top-level value not an array).
    """

    def __init__(
        self,
        message: str,
        *,
        index: Optional[int] = None,
        field: Optional[str] = None,
        context: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.index = index
        self.field = field
        self.context = context

    def __str__(self) -> str:
        parts = [self.message]
        if self.context:
            parts.append(f"({self.context})")
        return " ".join(parts)


class RedirectEntry(BaseModel):
    """Shape of one raw record. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_: str = Field(alias="from", min_length=1)
    to: str = Field(min_length=1)
    permanent: StrictBool = False


_DOCUMENT = TypeAdapter(list[RedirectEntry])


def normalize_pattern(pattern: str) -> str:
    """Strip one trailing slash and anchor with an optional trailing slash.

    "/my-post/" and "/my-post" both become "/my-post/?$", so requests for
    /my-post and /my-post/ match the same rule. A pattern the author already
    ended with "$" keeps its own anchor.
    """
    if pattern.endswith("/"):
        pattern = pattern[:-1]
    if not pattern:
        # "from": "/" -- only the site root, not "every path ending in /".
        return "^/?$"
    if not pattern.endswith("$"):
        pattern += "/?$"
    return pattern


def compile_rules(document: Any, source: Optional[Path] = None) -> CompiledRuleSet:
    """Validate and compile an already-parsed redirects document.

    Raises RedirectConfigError on the first structural violation or on the
    first pattern that fails to compile.
    """
    try:
        entries = _DOCUMENT.validate_python(document)
    except ValidationError as exc:
        raise _from_validation_error(exc) from exc

    rules: list[RedirectRule] = []
    for index, entry in enumerate(entries):
        pattern = normalize_pattern(entry.from_)
        try:
            matcher = re.compile(pattern)
        except re.error as exc:
            raise RedirectConfigError(
                f"Redirect {index} has an invalid 'from' pattern.",
                index=index,
                field="from",
                context=f"{entry.from_!r}: {exc}",
            ) from exc
        logger.debug("register %s -> %s", pattern, entry.to)
        rules.append(RedirectRule(from_pattern=pattern, to=entry.to, permanent=entry.permanent, matcher=matcher))

    return CompiledRuleSet(rules=tuple(rules), source=source)


def load_rule_set(path: Path) -> CompiledRuleSet:
    """Read, parse and compile the redirects file at path.

    Returns an empty rule set when the file does not exist.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("No redirects file at %s -- custom redirects disabled", path)
        return CompiledRuleSet(source=path)
    except (OSError, UnicodeDecodeError) as exc:
        raise RedirectConfigError("Could not read redirects file.", context=str(exc)) from exc

    return compile_rules(parse_document(raw), source=path)


def parse_document(raw: str) -> Any:
    """json.loads with the failure mapped onto RedirectConfigError."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RedirectConfigError(
            "Redirects file is not valid JSON.",
            context=f"line {exc.lineno} column {exc.colno}: {exc.msg}",
        ) from exc


def _from_validation_error(exc: ValidationError) -> RedirectConfigError:
    """Map pydantic's first error onto (index, field)."""
    first = exc.errors()[0]
    loc = first.get("loc", ())
    if not loc:
        return RedirectConfigError(
            "Redirects file must contain a JSON array of redirect objects.",
            context=first.get("msg"),
        )
    index = loc[0] if isinstance(loc[0], int) else None
    field = str(loc[1]) if len(loc) > 1 else None
    if field is None:
        message = f"Redirect {index} must be an object with 'from' and 'to'."
    else:
        message = f"Redirect {index} has an invalid '{field}' field."
    return RedirectConfigError(message, index=index, field=field, context=first.get("msg"))
