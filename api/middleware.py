"""
api/middleware.py -- HTTP middleware shared by the admin and content API chains.

These run before routing, so they see requests FastAPI would otherwise
answer itself (for example the trailing-slash redirect). api/main.py
registers them; the order there is the order a request meets them:

  admin_redirect   -- move admin API traffic onto Settings.admin_url
  pretty_urls      -- lowercase the API prefix, add the trailing slash
  api_cache_control -- every /api/ response is private and uncacheable
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

from fastapi import Request
from fastapi.responses import RedirectResponse

from core.config import get_settings

logger = logging.getLogger("inkpost.api")

API_PREFIX = "/api/"

PRIVATE_CACHE_CONTROL = "no-cache, private, no-store, must-revalidate, max-stale=0, post-check=0, pre-check=0"

YEAR_CACHE_CONTROL = "public, max-age=31536000"

_API_ROOT = re.compile(r"^/api/v\d+/(?:admin|content)/", re.IGNORECASE)
_ADMIN_ROOT = re.compile(r"^/api/v\d+/admin/")


def _with_query(path: str, request: Request) -> str:
    return f"{path}?{request.url.query}" if request.url.query else path


async def admin_redirect(request: Request, call_next):
    """301 admin API requests that arrive on a host other than Settings.admin_url."""
    admin_url = get_settings().admin_url
    if admin_url and _ADMIN_ROOT.match(request.url.path):
        target = urlsplit(admin_url)
        if (request.url.scheme, request.url.netloc) != (target.scheme, target.netloc):
            location = f"{target.scheme}://{target.netloc}{_with_query(request.url.path, request)}"
            logger.debug("Admin API request on %s moved to %s", request.url.netloc, target.netloc)
            return RedirectResponse(location, status_code=301)
    return await call_next(request)


async def pretty_urls(request: Request, call_next):
    """Canonicalize API URLs with a permanent redirect.

    Uppercase characters in the /api/vN/admin|content/ prefix are lowercased;
    the rest of the path (slugs, ids) is left alone. GET and HEAD requests
    without a trailing slash get one, unless the last segment looks like a
    file name.
    """
    path = request.url.path
    if not path.lower().startswith(API_PREFIX):
        return await call_next(request)

    root = _API_ROOT.match(path)
    if root and root.group(0) != root.group(0).lower():
        fixed = root.group(0).lower() + path[root.end():]
        return RedirectResponse(_with_query(fixed, request), status_code=301)

    if request.method in ("GET", "HEAD") and not path.endswith("/"):
        last_segment = path.rsplit("/", 1)[-1]
        if "." not in last_segment:
            return RedirectResponse(
                _with_query(path + "/", request),
                status_code=301,
                headers={"Cache-Control": YEAR_CACHE_CONTROL},
            )
    return await call_next(request)


async def api_cache_control(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith(API_PREFIX):
        response.headers["Cache-Control"] = PRIVATE_CACHE_CONTROL
    return response
