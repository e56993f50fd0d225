"""
content/invalidation.py -- What a successful post mutation invalidates.

The answer becomes the X-Cache-Invalidate response header:
  "/*"          -- the public site changed (anything involving a published post)
  "/p/<uuid>/"  -- only the preview of a draft or scheduled post changed
  None          -- nothing public changed, no header

Reads and failed mutations never invalidate; callers only ask after a
mutation succeeded.
"""

from typing import Optional

from content.models import Post

INVALIDATE_ALL = "/*"


def preview_path(post: Post) -> str:
    return f"/p/{post.uuid}/"


def _is_published(post: Post) -> bool:
    return post.status == "published"


def on_add(post: Post) -> Optional[str]:
    return INVALIDATE_ALL if _is_published(post) else None


def on_edit(before: Post, after: Post, changed: bool) -> Optional[str]:
    """before/after are the stored records around the edit; changed says whether any value was written."""
    if _is_published(before) or _is_published(after):
        if _is_published(before) and _is_published(after) and not changed:
            return None
        return INVALIDATE_ALL
    return preview_path(after)


def on_delete(post: Post) -> Optional[str]:
    return INVALIDATE_ALL if _is_published(post) else preview_path(post)
