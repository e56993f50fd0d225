"""
API request and response models for the Inkpost REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in content/models.py,
which own the internal domain representation. Route handlers map between the
two (see api/serializers.py).
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PostStatusEnum(str, Enum):
    draft = "draft"
    published = "published"
    scheduled = "scheduled"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class TagIn(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=191)


class PostIn(BaseModel):
    """One post in a {"posts": [...]} write body.

    Read-only attributes (uuid, created_at, created_by, updated_at,
    updated_by, plaintext) are accepted and dropped. id is kept so PUT can
    compare it with the URL id. page and featured are strict booleans:
    "true" or 1 are rejected with 422.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    title: Optional[str] = Field(default=None, max_length=2000)
    slug: Optional[str] = Field(default=None, max_length=191)
    mobiledoc: Optional[str] = None
    html: Optional[str] = None
    status: Optional[PostStatusEnum] = None
    page: Optional[StrictBool] = None
    featured: Optional[StrictBool] = None
    published_at: Optional[str] = None
    tags: Optional[list[Union[str, TagIn]]] = None

    def tag_names(self) -> Optional[list[str]]:
        if self.tags is None:
            return None
        return [t if isinstance(t, str) else t.name for t in self.tags]


class PostsBody(BaseModel):
    """Write envelope: exactly one post per request."""

    posts: list[PostIn] = Field(min_length=1, max_length=1)


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=1024)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """One entry of the errors envelope.

    type is the error kind ("NotFoundError", "ValidationError", ...) and goes
    on the wire as "errorType"; context carries extra detail such as the
    offending redirect rule.
    """

    type: str = Field(serialization_alias="errorType")
    message: str
    context: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope for all API error responses: {"errors": [...]}."""

    errors: list[ErrorDetail]


class Pagination(BaseModel):
    page: int
    limit: Union[int, str]
    pages: int
    total: int
    next: Optional[int] = None
    prev: Optional[int] = None


class SessionResponse(BaseModel):
    access_token: str
    token_type: str
    expires_in: int
    username: str
    role: str


class RedirectsReloadResponse(BaseModel):
    rules: int
    source: str


class HealthResponse(BaseModel):
    """status is "healthy" when every component reports "ok", else "degraded"."""

    status: str
    version: str
    components: dict[str, str] = Field(default_factory=dict)
    redirects: dict = Field(default_factory=dict)
