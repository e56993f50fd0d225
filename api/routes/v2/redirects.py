"""
api/routes/v2/redirects.py -- Admin endpoints for the custom redirects file.

Routes (all behind the PRIVATE chain):
  GET  /api/v2/admin/redirects/json/   -- download the current redirects.json
  POST /api/v2/admin/redirects/json/   -- upload a replacement (multipart "redirects")
  POST /api/v2/admin/redirects/reload/ -- recompile the file on disk

An upload is compiled before anything is written. A file that does not
compile is answered with 422 and changes nothing; a good one replaces the
file (the old one is kept as redirects-<timestamp>.json) and goes live
immediately.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response, UploadFile

from api.models import ErrorDetail, RedirectsReloadResponse
from api.routes.v2.chains import PRIVATE
from content.invalidation import INVALIDATE_ALL
from redirects.compiler import RedirectConfigError
from redirects.service import RedirectService

router = APIRouter(dependencies=PRIVATE)

_MAX_UPLOAD_BYTES = 1 * 1024 * 1024


def _config_error(exc: RedirectConfigError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=ErrorDetail(type="ValidationError", message=exc.message, context=exc.context).model_dump(),
    )


@router.get("/redirects/json/")
def download_redirects(request: Request) -> Response:
    service: RedirectService = request.app.state.redirects
    return Response(
        content=service.read_document(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="redirects.json"'},
    )


@router.post("/redirects/json/")
async def upload_redirects(request: Request, response: Response, redirects: UploadFile) -> RedirectsReloadResponse:
    raw = await redirects.read(_MAX_UPLOAD_BYTES + 1)
    if len(raw) > _MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(type="RequestEntityTooLargeError", message="File must be 1 MB or smaller.").model_dump(),
        )
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(
            status_code=422,
            detail=ErrorDetail(type="ValidationError", message="Redirects file must be UTF-8 encoded.").model_dump(),
        ) from exc

    service: RedirectService = request.app.state.redirects
    try:
        rule_set = service.replace(text)
    except RedirectConfigError as exc:
        raise _config_error(exc) from exc

    response.headers["X-Cache-Invalidate"] = INVALIDATE_ALL
    return RedirectsReloadResponse(rules=len(rule_set), source=str(service.path))


@router.post("/redirects/reload/")
def reload_redirects(request: Request, response: Response) -> RedirectsReloadResponse:
    service: RedirectService = request.app.state.redirects
    try:
        rule_set = service.reload()
    except RedirectConfigError as exc:
        raise _config_error(exc) from exc
    response.headers["X-Cache-Invalidate"] = INVALIDATE_ALL
    return RedirectsReloadResponse(rules=len(rule_set), source=str(service.path))
