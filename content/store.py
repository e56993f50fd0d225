"""
content/store.py -- SQLAlchemy-backed persistence layer for posts and tags.

Pattern: Repository + Data Mapper. PostStore is the repository; the _row_to_*
functions translate rows into content/models.py dataclasses. Route handlers
never touch SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = PostStore()
    post = store.create_post(Post(title="Hello"), tags=["news"], actor_id="1")
    posts, total = store.browse_posts(statuses={"published"}, page_flag=False)
    post, changed = store.update_post(post.id, {"status": "published"}, actor_id="1")
    store.delete_post(post.id)
    store.close()
"""

from __future__ import annotations

import html as html_lib
import logging
import re
import secrets
import uuid as uuid_lib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine

from content.models import POST_STATUSES, Post, Tag

logger = logging.getLogger("inkpost.content")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'inkpost_content.db'}"

# Fields a client may write. Everything else on Post is maintained here.
EDITABLE_FIELDS = ("title", "slug", "mobiledoc", "html", "status", "page", "featured", "published_at")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_posts = Table(
    "posts",
    metadata,
    Column("id", String(24), primary_key=True),
    Column("uuid", String(36), nullable=False, unique=True),
    Column("title", String(2000), nullable=False),
    Column("slug", String(191), nullable=False, unique=True),
    Column("mobiledoc", Text),
    Column("html", Text),
    Column("plaintext", Text),
    Column("status", String(50), nullable=False, server_default="draft"),
    Column("page", Integer, nullable=False, server_default="0"),
    Column("featured", Integer, nullable=False, server_default="0"),
    Column("published_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("created_by", String(24)),
    Column("updated_at", String(32), nullable=False),
    Column("updated_by", String(24)),
)

_tags = Table(
    "tags",
    metadata,
    Column("id", String(24), primary_key=True),
    Column("name", String(191), nullable=False),
    Column("slug", String(191), nullable=False, unique=True),
)

_posts_tags = Table(
    "posts_tags",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("post_id", String(24), nullable=False),
    Column("tag_id", String(24), nullable=False),
    Column("sort_order", Integer, nullable=False, server_default="0"),
    UniqueConstraint("post_id", "tag_id", name="uq_post_tag"),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_NON_SLUG = re.compile(r"[^a-z0-9]+")
_TAG = re.compile(r"<[^>]+>")
_BLANK = re.compile(r"\s+")


class PostNotFound(Exception):
    """No post with the given id (or slug) exists."""


class InvalidFilter(ValueError):
    """A browse filter expression could not be parsed."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_object_id() -> str:
    return secrets.token_hex(12)


def slugify(value: str) -> str:
    slug = _NON_SLUG.sub("-", value.lower()).strip("-")
    return slug[:185] or "untitled"


def html_to_plaintext(markup: Optional[str]) -> Optional[str]:
    if markup is None:
        return None
    return _BLANK.sub(" ", html_lib.unescape(_TAG.sub(" ", markup))).strip()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode per connection (PRAGMAs are not inherited)."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Browse filters
# ---------------------------------------------------------------------------

_BOOL_VALUES = {"true": True, "false": False}


@dataclass
class PostFilter:
    """Parsed form of a filter=key:value+key:value expression."""

    featured: Optional[bool] = None
    page: Optional[bool] = None
    statuses: Optional[set[str]] = None
    tags: list[str] = field(default_factory=list)


def parse_filter(expression: Optional[str]) -> PostFilter:
    """Parse "featured:true+tag:news" style expressions.

    Supported keys: featured, page (true/false), status, tag (slug).
    Raises InvalidFilter for unknown keys or values.
    """
    parsed = PostFilter()
    if not expression:
        return parsed
    for term in expression.split("+"):
        key, sep, value = term.strip().partition(":")
        value = value.strip().strip("'\"")
        if not sep or not value:
            raise InvalidFilter(f"Malformed filter term: {term!r}")
        if key in ("featured", "page"):
            if value not in _BOOL_VALUES:
                raise InvalidFilter(f"{key} filter expects true or false, got {value!r}")
            setattr(parsed, key, _BOOL_VALUES[value])
        elif key == "status":
            if value not in POST_STATUSES:
                raise InvalidFilter(f"Unknown status {value!r}")
            parsed.statuses = {value}
        elif key == "tag":
            parsed.tags.append(value)
        else:
            raise InvalidFilter(f"Unsupported filter key {key!r}")
    return parsed


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class PostStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_post(self, post_id: str, statuses: Optional[set[str]] = None) -> Optional[Post]:
        """Fetch a post by id. statuses=None matches any status."""
        return self._get_one(_posts.c.id == post_id, statuses)

    def get_post_by_slug(self, slug: str, statuses: Optional[set[str]] = None) -> Optional[Post]:
        return self._get_one(_posts.c.slug == slug, statuses)

    def _get_one(self, clause, statuses: Optional[set[str]]) -> Optional[Post]:
        query = _posts.select().where(clause)
        if statuses is not None:
            query = query.where(_posts.c.status.in_(sorted(statuses)))
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
            if row is None:
                return None
            tags = _tags_for(conn, [row.id])
        return _row_to_post(row, tags.get(row.id, []))

    def count_posts(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_posts)).scalar() or 0

    def browse_posts(
        self,
        statuses: Optional[set[str]] = None,
        page_flag: Optional[bool] = False,
        post_filter: Optional[PostFilter] = None,
        limit: Optional[int] = 15,
        page: int = 1,
    ) -> tuple[list[Post], int]:
        """Return one page of posts and the total match count.

        statuses=None and page_flag=None disable those filters. limit=None
        returns every match. Newest published first, then newest created.
        """
        post_filter = post_filter or PostFilter()
        conditions = []
        if statuses is not None:
            conditions.append(_posts.c.status.in_(sorted(statuses)))
        if post_filter.statuses is not None:
            conditions.append(_posts.c.status.in_(sorted(post_filter.statuses)))
        if page_flag is not None:
            conditions.append(_posts.c.page == int(page_flag))
        if post_filter.page is not None:
            conditions.append(_posts.c.page == int(post_filter.page))
        if post_filter.featured is not None:
            conditions.append(_posts.c.featured == int(post_filter.featured))
        for tag_slug in post_filter.tags:
            tagged = (
                select(_posts_tags.c.post_id)
                .join(_tags, _tags.c.id == _posts_tags.c.tag_id)
                .where(_tags.c.slug == tag_slug)
            )
            conditions.append(_posts.c.id.in_(tagged))

        query = _posts.select().order_by(
            _posts.c.published_at.desc(), _posts.c.created_at.desc(), _posts.c.id.desc()
        )
        count_query = select(func.count()).select_from(_posts)
        if conditions:
            query = query.where(*conditions)
            count_query = count_query.where(*conditions)
        if limit is not None:
            query = query.limit(limit).offset((page - 1) * limit)

        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(query).fetchall()
            tags = _tags_for(conn, [r.id for r in rows])
        return [_row_to_post(r, tags.get(r.id, [])) for r in rows], total

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_post(self, post: Post, tags: Optional[list[str]] = None, actor_id: Optional[str] = None) -> Post:
        """Insert post (and any new tags) and return the stored record."""
        now = _now_iso()
        post_id = new_object_id()
        published_at = post.published_at
        if post.status == "published" and not published_at:
            published_at = now
        with self.engine.connect() as conn:
            slug = _unique_slug(conn, post.slug or post.title)
            conn.execute(
                _posts.insert().values(
                    id=post_id,
                    uuid=str(uuid_lib.uuid4()),
                    title=post.title,
                    slug=slug,
                    mobiledoc=post.mobiledoc,
                    html=post.html,
                    plaintext=html_to_plaintext(post.html),
                    status=post.status,
                    page=int(post.page),
                    featured=int(post.featured),
                    published_at=published_at,
                    created_at=now,
                    created_by=actor_id,
                    updated_at=now,
                    updated_by=actor_id,
                )
            )
            if tags:
                _replace_tags(conn, post_id, tags)
            conn.commit()
        logger.info("Post %s created (%s)", post_id, post.status)
        created = self.get_post(post_id)
        if created is None:
            raise PostNotFound(post_id)
        return created

    def update_post(self, post_id: str, fields: dict, tags: Optional[list[str]] = None, actor_id: Optional[str] = None) -> tuple[Post, bool]:
        """Apply fields (a subset of EDITABLE_FIELDS) and optionally replace tags.

        Returns (post, changed). Nothing is written when no value differs.
        Raises PostNotFound for an unknown id.
        """
        before = self.get_post(post_id)
        if before is None:
            raise PostNotFound(post_id)

        values = {}
        for name in EDITABLE_FIELDS:
            if name in fields and fields[name] != getattr(before, name):
                values[name] = fields[name]
        tags_changed = tags is not None and [slugify(t) for t in tags] != [t.slug for t in before.tags]
        if not values and not tags_changed:
            return before, False

        with self.engine.connect() as conn:
            if "slug" in values:
                values["slug"] = _unique_slug(conn, values["slug"] or before.title, exclude_id=post_id)
            if "html" in values:
                values["plaintext"] = html_to_plaintext(values["html"])
            if values.get("status") == "published" and not (values.get("published_at") or before.published_at):
                values["published_at"] = _now_iso()
            for flag in ("page", "featured"):
                if flag in values:
                    values[flag] = int(values[flag])
            values["updated_at"] = _now_iso()
            values["updated_by"] = actor_id
            conn.execute(_posts.update().where(_posts.c.id == post_id).values(**values))
            if tags_changed:
                _replace_tags(conn, post_id, tags or [])
            conn.commit()

        # Deleted concurrently between the write and the read back.
        after = self.get_post(post_id)
        if after is None:
            raise PostNotFound(post_id)
        logger.info("Post %s updated (%s -> %s)", post_id, before.status, after.status)
        return after, True

    def delete_post(self, post_id: str) -> Post:
        """Delete a post and its tag links. Returns the deleted record.

        Raises PostNotFound for an unknown id.
        """
        post = self.get_post(post_id)
        if post is None:
            raise PostNotFound(post_id)
        with self.engine.connect() as conn:
            conn.execute(_posts_tags.delete().where(_posts_tags.c.post_id == post_id))
            conn.execute(_posts.delete().where(_posts.c.id == post_id))
            conn.commit()
        logger.info("Post %s deleted", post_id)
        return post

    def close(self) -> None:
        """Dispose the engine and release all pooled connections."""
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Connection-level helpers
# ---------------------------------------------------------------------------


def _unique_slug(conn: Connection, base: str, exclude_id: Optional[str] = None) -> str:
    """Return slugify(base), suffixed -2, -3, ... until no other post uses it."""
    root = slugify(base)
    candidate, n = root, 1
    while True:
        query = select(_posts.c.id).where(_posts.c.slug == candidate)
        if exclude_id is not None:
            query = query.where(_posts.c.id != exclude_id)
        if conn.execute(query).fetchone() is None:
            return candidate
        n += 1
        candidate = f"{root}-{n}"


def _replace_tags(conn: Connection, post_id: str, names: list[str]) -> None:
    conn.execute(_posts_tags.delete().where(_posts_tags.c.post_id == post_id))
    seen: set[str] = set()
    for order, name in enumerate(names):
        slug = slugify(name)
        if slug in seen:
            continue
        seen.add(slug)
        row = conn.execute(select(_tags.c.id).where(_tags.c.slug == slug)).fetchone()
        if row is None:
            tag_id = new_object_id()
            conn.execute(_tags.insert().values(id=tag_id, name=name.strip(), slug=slug))
        else:
            tag_id = row.id
        conn.execute(_posts_tags.insert().values(post_id=post_id, tag_id=tag_id, sort_order=order))


def _tags_for(conn: Connection, post_ids: list[str]) -> dict[str, list[Tag]]:
    if not post_ids:
        return {}
    rows = conn.execute(
        select(_posts_tags.c.post_id, _tags.c.id, _tags.c.name, _tags.c.slug)
        .join(_tags, _tags.c.id == _posts_tags.c.tag_id)
        .where(_posts_tags.c.post_id.in_(post_ids))
        .order_by(_posts_tags.c.sort_order)
    ).fetchall()
    result: dict[str, list[Tag]] = {}
    for r in rows:
        result.setdefault(r.post_id, []).append(Tag(id=r.id, name=r.name, slug=r.slug))
    return result


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_post(row, tags: list[Tag]) -> Post:
    return Post(
        id=row.id,
        uuid=row.uuid,
        title=row.title,
        slug=row.slug,
        mobiledoc=row.mobiledoc,
        html=row.html,
        plaintext=row.plaintext,
        status=row.status,
        page=bool(row.page),
        featured=bool(row.featured),
        published_at=row.published_at,
        created_at=row.created_at,
        created_by=row.created_by,
        updated_at=row.updated_at,
        updated_by=row.updated_by,
        tags=tags,
    )
