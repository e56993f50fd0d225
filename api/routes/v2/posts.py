"""
api/routes/v2/posts.py -- Admin posts REST endpoints.

Routes (all behind the PRIVATE chain):
  GET    /api/v2/admin/posts/             -- browse with filters and pagination
  GET    /api/v2/admin/posts/{id}/        -- read by id
  GET    /api/v2/admin/posts/slug/{slug}/ -- read by slug
  POST   /api/v2/admin/posts/             -- add; 201 + Location
  PUT    /api/v2/admin/posts/{id}/        -- edit
  DELETE /api/v2/admin/posts/{id}/        -- delete; 204

Reads default to published posts; ?status= widens them. Successful
mutations set X-Cache-Invalidate as decided by content/invalidation.py.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import ErrorDetail, PostsBody
from api.routes.v2.chains import PRIVATE
from api.serializers import SerializeOptions, pagination, serialize_post
from auth.dependencies import current_api_key, current_user
from content import invalidation
from content.models import POST_STATUSES, Post
from content.store import InvalidFilter, PostNotFound, PostStore, parse_filter

router = APIRouter(dependencies=PRIVATE)

_DEFAULT_LIMIT = 15


# ---------------------------------------------------------------------------
# Query helpers (shared with api/routes/v2/content.py)
# ---------------------------------------------------------------------------


def validation_error(message: str, context: Optional[str] = None) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=ErrorDetail(type="ValidationError", message=message, context=context).model_dump(),
    )


def not_found(message: str = "Post not found.") -> HTTPException:
    return HTTPException(status_code=404, detail=ErrorDetail(type="NotFoundError", message=message).model_dump())


def serialize_options(
    formats: Optional[str] = None,
    fields: Optional[str] = None,
    include: Optional[str] = None,
) -> SerializeOptions:
    return SerializeOptions.from_query(formats, fields, include)


def status_filter(status: Optional[str]) -> Optional[set[str]]:
    """Map ?status= onto a set of statuses; None means any status."""
    if status is None or status == "published":
        return {"published"}
    if status == "all":
        return None
    if status in POST_STATUSES:
        return {status}
    raise validation_error(f"Invalid status {status!r}.", context="status")


def static_pages_filter(static_pages: Optional[str]) -> Optional[bool]:
    if static_pages is None or static_pages == "false":
        return False
    if static_pages == "true":
        return True
    if static_pages == "all":
        return None
    raise validation_error(f"Invalid staticPages value {static_pages!r}.", context="staticPages")


def limit_value(limit: Optional[str]) -> Optional[int]:
    """Parse ?limit=; "all" returns None (no limit)."""
    if limit is None:
        return _DEFAULT_LIMIT
    if limit == "all":
        return None
    if limit.isdigit() and int(limit) > 0:
        return int(limit)
    raise validation_error(f"Invalid limit {limit!r}.", context="limit")


def browse(
    store: PostStore,
    options: SerializeOptions,
    statuses: Optional[set[str]],
    static_pages: Optional[str],
    filter_expr: Optional[str],
    limit: Optional[str],
    page: int,
) -> dict:
    try:
        post_filter = parse_filter(filter_expr)
    except InvalidFilter as exc:
        raise validation_error(str(exc), context="filter") from exc
    page_size = limit_value(limit)
    posts, total = store.browse_posts(
        statuses=statuses,
        page_flag=static_pages_filter(static_pages),
        post_filter=post_filter,
        limit=page_size,
        page=page,
    )
    return {
        "posts": [serialize_post(p, options) for p in posts],
        "meta": {"pagination": pagination(page, page_size, total).model_dump()},
    }


def _actor_id(request: Request) -> Optional[str]:
    user = current_user(request)
    if user is not None:
        return str(user.id)
    api_key = current_api_key(request)
    return api_key.id if api_key is not None else None


def _set_invalidation(response: Response, path: Optional[str]) -> None:
    if path is not None:
        response.headers["X-Cache-Invalidate"] = path


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get("/posts/")
def browse_posts(
    request: Request,
    options: SerializeOptions = Depends(serialize_options),
    status: Optional[str] = None,
    static_pages: Optional[str] = Query(default=None, alias="staticPages"),
    filter_expr: Optional[str] = Query(default=None, alias="filter"),
    limit: Optional[str] = None,
    page: int = Query(default=1, ge=1),
) -> dict:
    return browse(request.app.state.post_store, options, status_filter(status), static_pages, filter_expr, limit, page)


@router.get("/posts/slug/{slug}/")
def read_post_by_slug(
    request: Request,
    slug: str,
    options: SerializeOptions = Depends(serialize_options),
    status: Optional[str] = None,
) -> dict:
    post = request.app.state.post_store.get_post_by_slug(slug, statuses=status_filter(status))
    if post is None:
        raise not_found()
    return {"posts": [serialize_post(post, options)]}


@router.get("/posts/{post_id}/")
def read_post(
    request: Request,
    post_id: str,
    options: SerializeOptions = Depends(serialize_options),
    status: Optional[str] = None,
) -> dict:
    post = request.app.state.post_store.get_post(post_id, statuses=status_filter(status))
    if post is None:
        raise not_found()
    return {"posts": [serialize_post(post, options)]}


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@router.post("/posts/", status_code=201)
def add_post(
    request: Request,
    response: Response,
    body: PostsBody,
    options: SerializeOptions = Depends(serialize_options),
) -> dict:
    data = body.posts[0]
    store: PostStore = request.app.state.post_store
    post = store.create_post(
        Post(
            title=data.title or "(Untitled)",
            slug=data.slug or "",
            mobiledoc=data.mobiledoc,
            html=data.html,
            status=data.status.value if data.status else "draft",
            page=bool(data.page),
            featured=bool(data.featured),
            published_at=data.published_at,
        ),
        tags=data.tag_names(),
        actor_id=_actor_id(request),
    )
    response.headers["Location"] = f"/api/v2/admin/posts/{post.id}/?status={post.status}"
    _set_invalidation(response, invalidation.on_add(post))
    return {"posts": [serialize_post(post, options)]}


@router.put("/posts/{post_id}/")
def edit_post(
    request: Request,
    response: Response,
    post_id: str,
    body: PostsBody,
    options: SerializeOptions = Depends(serialize_options),
) -> dict:
    data = body.posts[0]
    if data.id is not None and data.id != post_id:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(type="BadRequestError", message="Invalid id provided.", context="id").model_dump(),
        )

    store: PostStore = request.app.state.post_store
    before = store.get_post(post_id)
    if before is None:
        raise not_found()

    fields = data.model_dump(exclude_unset=True, exclude={"id", "tags"})
    if "status" in fields and fields["status"] is not None:
        fields["status"] = fields["status"].value
    fields = {k: v for k, v in fields.items() if v is not None or k in ("mobiledoc", "html", "published_at")}
    try:
        after, changed = store.update_post(post_id, fields, tags=data.tag_names(), actor_id=_actor_id(request))
    except PostNotFound as exc:
        raise not_found() from exc

    _set_invalidation(response, invalidation.on_edit(before, after, changed))
    return {"posts": [serialize_post(after, options)]}


@router.delete("/posts/{post_id}/", status_code=204)
def delete_post(request: Request, response: Response, post_id: str) -> None:
    try:
        post = request.app.state.post_store.delete_post(post_id)
    except PostNotFound as exc:
        raise not_found() from exc
    _set_invalidation(response, invalidation.on_delete(post))
