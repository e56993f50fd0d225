"""
api/routes/v2/content.py -- Public content API for the site frontend.

Routes (client chain, client slug "ghost-frontend"):
  GET /api/v2/content/posts/             -- browse published posts
  GET /api/v2/content/posts/{id}/        -- read a published post
  GET /api/v2/content/posts/slug/{slug}/ -- read a published post by slug

Only published posts are ever returned; there is no ?status= override.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.routes.v2.chains import FRONTEND_CLIENT, authenticate_client
from api.routes.v2.posts import browse, not_found, serialize_options
from api.serializers import SerializeOptions, serialize_post

router = APIRouter(dependencies=authenticate_client(FRONTEND_CLIENT))

_PUBLISHED = {"published"}


@router.get("/posts/")
def browse_posts(
    request: Request,
    options: SerializeOptions = Depends(serialize_options),
    static_pages: Optional[str] = Query(default=None, alias="staticPages"),
    filter_expr: Optional[str] = Query(default=None, alias="filter"),
    limit: Optional[str] = None,
    page: int = Query(default=1, ge=1),
) -> dict:
    return browse(request.app.state.post_store, options, _PUBLISHED, static_pages, filter_expr, limit, page)


@router.get("/posts/slug/{slug}/")
def read_post_by_slug(request: Request, slug: str, options: SerializeOptions = Depends(serialize_options)) -> dict:
    post = request.app.state.post_store.get_post_by_slug(slug, statuses=_PUBLISHED)
    if post is None:
        raise not_found()
    return {"posts": [serialize_post(post, options)]}


@router.get("/posts/{post_id}/")
def read_post(request: Request, post_id: str, options: SerializeOptions = Depends(serialize_options)) -> dict:
    post = request.app.state.post_store.get_post(post_id, statuses=_PUBLISHED)
    if post is None:
        raise not_found()
    return {"posts": [serialize_post(post, options)]}
