from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["author", "admin"]


# --- Identity ---

class Actor(BaseModel):
    """Already-verified principal supplied by the identity layer."""
    id: str
    role: Role = "author"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# --- User ---

class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(max_length=255)
    avatar: str | None = Field(None, max_length=500)
    bio: str | None = None
    role: Role = "author"


# --- Category ---

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: str | None = Field(None, max_length=200)
    color: str | None = Field(None, max_length=20)


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = Field(None, max_length=200)
    color: str | None = Field(None, max_length=20)


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=1000)


# --- Post ---

class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    category: str = Field(min_length=1, description="Category id or slug.")
    tags: list[str] = []
    is_published: bool = False
    # Opaque reference handed over by the upload layer; stored verbatim.
    featured_image: str | None = Field(None, max_length=500)


class PostUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    content: str | None = Field(None, min_length=1)
    category: str | None = Field(None, min_length=1)
    tags: list[str] | None = None
    is_published: bool | None = None
    featured_image: str | None = Field(None, max_length=500)


# --- Envelopes ---

class PaginatedResponse(BaseModel):
    success: bool = True
    count: int
    total: int
    page: int
    pages: int
    data: list


class ListResponse(BaseModel):
    success: bool = True
    count: int
    data: list


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_posts: int
    total_categories: int
    total_comments: int
    total_users: int
    avg_comments_per_post: float
    cache_info: dict = {}
