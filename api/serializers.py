"""
api/serializers.py -- Post dataclass -> JSON-ready dict, shaped by query options.

Formats (html, mobiledoc, plaintext) are opt-in via ?formats=, html being the
default. ?fields= narrows the output further, ?include=tags adds tags.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import ceil
from typing import Optional

from api.models import Pagination
from content.models import Post

FORMATS = ("html", "mobiledoc", "plaintext")

_BASE_FIELDS = (
    "id",
    "uuid",
    "title",
    "slug",
    "status",
    "page",
    "featured",
    "published_at",
    "created_at",
    "created_by",
    "updated_at",
    "updated_by",
)


def _csv(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class SerializeOptions:
    formats: tuple[str, ...] = ("html",)
    fields: tuple[str, ...] = ()
    include_tags: bool = False

    @classmethod
    def from_query(cls, formats: Optional[str], fields: Optional[str], include: Optional[str]) -> SerializeOptions:
        """Build options from raw query strings; unknown formats are ignored."""
        wanted = tuple(f for f in _csv(formats) if f in FORMATS) or ("html",)
        return cls(
            formats=wanted,
            fields=tuple(_csv(fields)),
            include_tags="tags" in _csv(include),
        )


def serialize_post(post: Post, options: SerializeOptions) -> dict:
    data = {name: getattr(post, name) for name in _BASE_FIELDS}
    for fmt in options.formats:
        data[fmt] = getattr(post, fmt)
    if options.fields:
        data = {k: v for k, v in data.items() if k in options.fields}
    if options.include_tags:
        data["tags"] = [{"id": t.id, "name": t.name, "slug": t.slug} for t in post.tags]
    return data


def pagination(page: int, limit: Optional[int], total: int) -> Pagination:
    """limit=None means "all": a single page holding every match."""
    if limit is None:
        return Pagination(page=1, limit="all", pages=1, total=total)
    pages = max(1, ceil(total / limit))
    return Pagination(
        page=page,
        limit=limit,
        pages=pages,
        total=total,
        next=page + 1 if page < pages else None,
        prev=page - 1 if page > 1 else None,
    )
