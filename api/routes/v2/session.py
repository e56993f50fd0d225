"""
api/routes/v2/session.py -- Staff sign-in for the admin API.

Routes:
  POST   /api/v2/admin/session/ -- password login; sets the access_token cookie
  DELETE /api/v2/admin/session/ -- clears the cookie

Security:
  POST is rate-limited per IP (Settings.login_rate_limit).
  authenticate_user() equalizes timing -- never inline the lookup + bcrypt check.
  Wrong username and wrong password produce the same error.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import ErrorDetail, LoginRequest, SessionResponse
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, set_auth_cookie
from core.config import get_settings

_settings = get_settings()

router = APIRouter()


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/session/", response_model=SessionResponse, status_code=201)
def create_session(request: Request, body: LoginRequest) -> JSONResponse:
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.username, body.password)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail=ErrorDetail(type="UnauthorizedError", message="Invalid username or password.").model_dump(),
        )

    user_store.update_last_login(user.id)
    token = create_access_token(user.id, user.username, user.role)
    resp = JSONResponse(
        status_code=201,
        content=SessionResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            username=user.username,
            role=user.role,
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    return resp


@router.delete("/session/", status_code=204)
def delete_session(response: Response) -> None:
    response.delete_cookie("access_token")
