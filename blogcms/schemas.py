from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# --- Auth ---

class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=72)


# --- User ---

class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr = Field(max_length=100)
    # bcrypt only looks at the first 72 bytes.
    password: str = Field(min_length=6, max_length=72)
    full_name: str = Field(min_length=1, max_length=100)


class UserUpdate(BaseModel):
    username: str | None = Field(None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr | None = Field(None, max_length=100)
    password: str | None = Field(None, min_length=6, max_length=72)
    full_name: str | None = Field(None, max_length=100)
    avatar_url: str | None = Field(None, max_length=500)
    bio: str | None = None
    is_active: bool | None = None


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    full_name: str
    avatar_url: str
    bio: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    roles: list[str] = []
    model_config = ConfigDict(from_attributes=True)


class AssignRoleRequest(BaseModel):
    role_id: int = Field(ge=1)


class AuthResponse(BaseModel):
    token: str
    user: UserResponse
    roles: list[str]
    expires_at: datetime


# --- Role ---

class RoleResponse(BaseModel):
    id: int
    name: str
    description: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# --- Tag ---

class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: str | None = Field(None, max_length=200)


class TagUpdate(BaseModel):
    name: str | None = Field(None, max_length=50)
    description: str | None = Field(None, max_length=200)


class TagResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: str
    created_at: datetime
    article_count: int = 0
    model_config = ConfigDict(from_attributes=True)


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=1000)
    article_id: int = Field(ge=1)
    parent_id: int | None = Field(None, ge=1)


class CommentUpdate(BaseModel):
    content: str | None = Field(None, max_length=1000)


class CommentResponse(BaseModel):
    id: int
    content: str
    is_approved: bool
    article_id: int
    user_id: int
    parent_id: int | None
    created_at: datetime
    updated_at: datetime
    user_name: str | None = None
    article_title: str | None = None


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    excerpt: str | None = Field(None, max_length=500)
    cover_image_url: str | None = Field(None, max_length=500, pattern=r"^(https?://.*)?$")
    is_published: bool = False
    tag_ids: list[int] = []


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, max_length=200)
    content: str | None = None
    excerpt: str | None = Field(None, max_length=500)
    cover_image_url: str | None = Field(None, max_length=500, pattern=r"^(https?://.*)?$")
    is_published: bool | None = None
    tag_ids: list[int] | None = None


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list  # Will be typed in router
    total: int
    page: int
    page_size: int
    pages: int
