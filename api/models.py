"""
API request and response models for the RBAC REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
posts/models.py, which own the internal domain representation. Route handlers
map between the two.

Request bodies accept both snake_case and camelCase keys (first_name or
firstName) so existing clients of the JSON API keep working. Responses are
always snake_case.
"""

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from auth.models import Page, Role, UserSummary, UserWithRole
from auth.tokens import MAX_PASSWORD_BYTES
from posts.models import Post

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", a dot in the domain, no whitespace. Deliverability
# is not our problem; uniqueness is enforced by the store.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PostStatusEnum(str, Enum):
    draft = "draft"
    published = "published"


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=MAX_PASSWORD_BYTES)
    first_name: str = Field(min_length=2, max_length=50, validation_alias=AliasChoices("first_name", "firstName"))
    last_name: str = Field(min_length=2, max_length=50, validation_alias=AliasChoices("last_name", "lastName"))
    role_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("role_id", "roleId"))


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserSummaryResponse(BaseModel):
    """Redacted user view returned by register, login and /auth/me."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    role: Optional[str] = None
    permissions: Optional[list[str]] = None

    @classmethod
    def from_summary(cls, summary: UserSummary) -> "UserSummaryResponse":
        return cls(
            id=summary.id,
            email=summary.email,
            first_name=summary.first_name,
            last_name=summary.last_name,
            role=summary.role,
            permissions=summary.permissions,
        )


class AuthResponse(BaseModel):
    """Response for register and login."""

    model_config = ConfigDict(frozen=True)

    message: str
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserSummaryResponse


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserSummaryResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleWrite(BaseModel):
    """Request body for POST /api/v1/roles and PUT /api/v1/roles/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=50)
    description: str = Field(default="", max_length=255)
    permissions: list[str] = Field(max_length=100)


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    permissions: list[str]
    user_count: int = 0
    created_at: str
    updated_at: str

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            permissions=role.permissions,
            user_count=role.user_count,
            created_at=role.created_at or "",
            updated_at=role.updated_at or "",
        )


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def from_page(cls, page: Page) -> "Pagination":
        return cls(page=page.page, limit=page.limit, total=page.total, pages=page.pages)


# ---------------------------------------------------------------------------
# Users (administration)
# ---------------------------------------------------------------------------


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    first_name: Optional[str] = Field(
        default=None, min_length=2, max_length=50, validation_alias=AliasChoices("first_name", "firstName")
    )
    last_name: Optional[str] = Field(
        default=None, min_length=2, max_length=50, validation_alias=AliasChoices("last_name", "lastName")
    )
    role_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("role_id", "roleId"))
    is_active: Optional[bool] = Field(default=None, validation_alias=AliasChoices("is_active", "isActive"))


class UserResponse(BaseModel):
    """Admin view of a user account. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    first_name: str
    last_name: str
    is_active: bool
    role_id: Optional[int]
    role: Optional[str]
    last_login: Optional[str]
    created_at: str

    @classmethod
    def from_row(cls, row: UserWithRole) -> "UserResponse":
        return cls(
            id=row.user.id,
            email=row.user.email,
            first_name=row.user.first_name,
            last_name=row.user.last_name,
            is_active=row.user.is_active,
            role_id=row.user.role_id,
            role=row.role_name,
            last_login=row.user.last_login,
            created_at=row.user.created_at or "",
        )


class UserListResponse(BaseModel):
    users: list[UserResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


class PostWrite(BaseModel):
    """Request body for POST /api/v1/posts and PUT /api/v1/posts/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=5, max_length=255)
    content: str = Field(min_length=10)
    status: Optional[PostStatusEnum] = None


class PostResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    content: str
    status: str
    author_id: int
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    published_at: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_post(cls, post: Post) -> "PostResponse":
        author_name = None
        if post.author_first_name or post.author_last_name:
            author_name = f"{post.author_first_name or ''} {post.author_last_name or ''}".strip()
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            status=post.status,
            author_id=post.author_id,
            author_name=author_name,
            author_email=post.author_email,
            published_at=post.published_at,
            created_at=post.created_at or "",
            updated_at=post.updated_at or "",
        )


class PostListResponse(BaseModel):
    posts: list[PostResponse]
    pagination: Pagination


class PublishToggle(BaseModel):
    """Request body for PATCH /api/v1/posts/{id}/publish. An empty body publishes."""

    publish: bool = True


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
