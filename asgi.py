"""
asgi.py -- Application assembly for Inkpost.

This is the ONLY file that joins the API (api/) and the site-facing custom
redirects (redirects/). api/main.py knows nothing about the site pipeline;
redirects/ knows nothing about FastAPI apps.

Run with:  uvicorn asgi:app --reload
"""

from fastapi import Request

from api.main import app
from api.middleware import API_PREFIX


# Mounted last, so it sits in front of the whole stack. API paths skip it;
# every other request is offered to the custom redirects first. The router
# handle on app.state.redirects stays the same across reloads.
@app.middleware("http")
async def custom_redirects(request: Request, call_next):
    if not request.url.path.lower().startswith(API_PREFIX):
        service = getattr(request.app.state, "redirects", None)
        if service is not None:
            redirect = service.router.handle(request)
            if redirect is not None:
                return redirect
    return await call_next(request)
