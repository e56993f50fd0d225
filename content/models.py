"""
content/models.py -- Domain dataclasses for posts and tags.

These are pure data containers. Slug generation, plaintext derivation and
publishing timestamps live in content/store.py; what a mutation invalidates
lives in content/invalidation.py.
"""

from dataclasses import dataclass, field
from typing import Optional

POST_STATUSES = ("draft", "published", "scheduled")


@dataclass
class Tag:
    name: str
    slug: str
    id: Optional[str] = None


@dataclass
class Post:
    """A post or a static page (page=True).

    id is a 24 hex char object id, uuid is the public preview identifier
    used in /p/<uuid>/. Both are None before the record is written.
    """

    title: str
    status: str = "draft"  # "draft" | "published" | "scheduled"
    slug: str = ""
    mobiledoc: Optional[str] = None
    html: Optional[str] = None
    plaintext: Optional[str] = None
    page: bool = False
    featured: bool = False
    published_at: Optional[str] = None  # ISO 8601
    id: Optional[str] = None
    uuid: Optional[str] = None
    created_at: str = ""
    created_by: Optional[str] = None
    updated_at: str = ""
    updated_by: Optional[str] = None
    tags: list[Tag] = field(default_factory=list)
