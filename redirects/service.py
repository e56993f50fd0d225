"""
redirects/service.py -- Process-wide owner of the custom redirect engine.

Lifecycle:
  construct   -- in the FastAPI lifespan, before the app accepts traffic
  load()      -- boot-time compile; failures are logged, never raised
  reload()    -- operator-triggered recompile + atomic publish
  replace()   -- validate an uploaded document, back up the old file, publish
  close()     -- at shutdown; drops the active rule set

The router (self.router) is the stable handle mounted into the site
pipeline. Reload compiles a throwaway candidate off to the side and only
then publishes it with router.swap(), so readers never block and never see
a half-built set. Concurrent reloads are serialized with a lock; the last
one to publish wins.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from redirects.compiler import HELP_URL, RedirectConfigError, compile_rules, load_rule_set, parse_document
from redirects.models import EMPTY_RULE_SET, CompiledRuleSet
from redirects.router import RedirectRouter

logger = logging.getLogger("inkpost.redirects")


@dataclass(frozen=True)
class LoadStatus:
    """Outcome of the most recent load or reload attempt."""

    ok: bool
    at: str  # ISO 8601
    error: Optional[str] = None


class RedirectService:
    """Owns the RedirectRouter and the reload lock for one redirects file.

    Usage:
        service = RedirectService(settings.redirects_file, max_age=settings.redirects_max_age)
        service.load()
        app.state.redirects = service
        ...
        service.reload()   # raises RedirectConfigError, old rules keep serving
        service.close()
    """

    def __init__(self, path: Path, max_age: int = 0) -> None:
        self.path = path
        self.router = RedirectRouter(EMPTY_RULE_SET, max_age=max_age)
        self._reload_lock = threading.Lock()
        self.last_status: Optional[LoadStatus] = None

    @property
    def rule_set(self) -> CompiledRuleSet:
        return self.router.rule_set

    def load(self) -> CompiledRuleSet:
        """Compile at boot. A malformed file leaves the engine empty, not the app down."""
        try:
            return self.reload()
        except RedirectConfigError:
            return self.router.rule_set

    def reload(self) -> CompiledRuleSet:
        """Recompile the redirects file and publish the result.

        On RedirectConfigError the active rule set is untouched; the error is
        logged and re-raised so the operator sees it.
        """
        with self._reload_lock:
            try:
                candidate = load_rule_set(self.path)
            except RedirectConfigError as exc:
                self.last_status = LoadStatus(ok=False, at=_now_iso(), error=str(exc))
                logger.error(
                    "Could not register custom redirects from %s: %s -- keeping %d active rule(s). See %s",
                    self.path,
                    exc,
                    len(self.router.rule_set),
                    HELP_URL,
                )
                raise
            self.router.swap(candidate)
            self.last_status = LoadStatus(ok=True, at=_now_iso())
        logger.info("Custom redirects loaded (%d rule(s))", len(candidate))
        return candidate

    def read_document(self) -> str:
        """Current file contents, "[]" when there is no file."""
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return "[]"

    def replace(self, raw: str) -> CompiledRuleSet:
        """Validate raw, back up the current file, write raw and publish it.

        Raises RedirectConfigError before touching the disk when raw does not
        compile; the file and the active rules stay as they were.
        A failed write leaves the live file in place as well.
        """
        with self._reload_lock:
            candidate = compile_rules(parse_document(raw), source=self.path)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            staged = self.path.with_name(f".{self.path.name}.tmp")
            try:
                staged.write_text(raw, encoding="utf-8")
            except OSError:
                staged.unlink(missing_ok=True)
                raise
            if self.path.exists():
                backup = self.path.with_name(f"{self.path.stem}-{_backup_stamp()}{self.path.suffix}")
                shutil.copy2(self.path, backup)
                logger.info("Previous redirects file saved as %s", backup)
            # The live file is only ever swapped in whole.
            os.replace(staged, self.path)
            self.router.swap(candidate)
            self.last_status = LoadStatus(ok=True, at=_now_iso())
        logger.info("Custom redirects replaced (%d rule(s))", len(candidate))
        return candidate

    def status(self) -> dict:
        """Summary for the health endpoint and the admin API."""
        return {
            "rules": len(self.router.rule_set),
            "source": str(self.path),
            "file_present": self.path.is_file(),
            "last_load_ok": self.last_status.ok if self.last_status else None,
            "last_load_at": self.last_status.at if self.last_status else None,
            "last_error": self.last_status.error if self.last_status else None,
        }

    def close(self) -> None:
        self.router.swap(EMPTY_RULE_SET)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _backup_stamp() -> str:
    return datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
