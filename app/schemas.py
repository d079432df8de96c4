import re

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
MAX_TAGS_PER_ARTICLE = 10


def _check_username(value: str) -> str:
    if not USERNAME_RE.match(value):
        raise ValueError("Username can only contain letters, numbers, and underscores")
    return value


def _check_password_strength(value: str) -> str:
    if not (
        any(c.islower() for c in value)
        and any(c.isupper() for c in value)
        and any(c.isdigit() for c in value)
    ):
        raise ValueError(
            "Password must contain at least one lowercase letter, one uppercase letter, and one number"
        )
    return value


def _clean_tags(values: list[str]) -> list[str]:
    """Strip blanks and drop case-insensitive duplicates, keeping order."""
    seen: set[str] = set()
    cleaned: list[str] = []
    for raw in values:
        name = raw.strip()
        if not name or name.lower() in seen:
            continue
        if len(name) > 50:
            raise ValueError("Tag names cannot exceed 50 characters")
        seen.add(name.lower())
        cleaned.append(name)
    return cleaned


# --- Auth ---

class RegisterRequest(BaseModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=8, max_length=128)
    confirm_password: str

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str) -> str:
        return _check_username(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return _check_password_strength(value)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


# --- User ---

class UserUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr | None = None
    username: str | None = Field(None, min_length=3, max_length=50)
    password: str | None = Field(None, min_length=8, max_length=128)
    bio: str | None = Field(None, max_length=500)
    avatar: str | None = Field(None, max_length=500)

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str | None) -> str | None:
        return None if value is None else _check_username(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str | None) -> str | None:
        return None if value is None else _check_password_strength(value)

    @model_validator(mode="after")
    def at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=1000)
    body: str = Field(min_length=1)
    tag_list: list[str] = Field(default_factory=list, max_length=MAX_TAGS_PER_ARTICLE)
    is_published: bool = True

    @field_validator("tag_list")
    @classmethod
    def clean_tags(cls, value: list[str]) -> list[str]:
        return _clean_tags(value)


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1, max_length=1000)
    body: str | None = Field(None, min_length=1)
    tag_list: list[str] | None = Field(None, max_length=MAX_TAGS_PER_ARTICLE)
    is_published: bool | None = None

    @field_validator("tag_list")
    @classmethod
    def clean_tags(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _clean_tags(value)

    @model_validator(mode="after")
    def at_least_one_field(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


# --- Comment ---

class CommentCreate(BaseModel):
    body: str = Field(min_length=1, max_length=5000)

    @field_validator("body")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comment body cannot be blank")
        return value.strip()


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_articles: int
    total_comments: int
    total_users: int
    avg_comments_per_article: float
    top_articles: list[dict] = []
    cache_info: dict = {}
