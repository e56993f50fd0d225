"""
redirects/models.py -- Domain dataclasses for the custom redirect engine.

These are pure data containers. Compilation lives in redirects/compiler.py,
matching in redirects/router.py.

Both RedirectRule and CompiledRuleSet are frozen: a reload never mutates an
existing rule set, it builds a new one and publishes it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class RedirectRule:
    """One compiled entry of redirects.json.

    from_pattern is the normalized pattern source: one trailing slash stripped
    and "/?$" appended unless the author ended the pattern with "$".
    """

    from_pattern: str
    to: str
    permanent: bool
    matcher: re.Pattern = field(repr=False, compare=False)

    @property
    def status_code(self) -> int:
        return 301 if self.permanent else 302


@dataclass(frozen=True)
class CompiledRuleSet:
    """Ordered, immutable sequence of rules. First match wins."""

    rules: tuple[RedirectRule, ...] = ()
    source: Optional[Path] = None

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)


EMPTY_RULE_SET = CompiledRuleSet()


@dataclass(frozen=True)
class RedirectResult:
    """Outcome of a successful match: what to send back to the client."""

    status_code: int
    location: str
    cache_control: str
    rule: RedirectRule
