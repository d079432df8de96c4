"""
Repository contracts, one per aggregate.

Services depend on these abstractions only.  Each concrete repository is
bound to the session (transaction handle) it was created with, so every
call made through it participates in the caller's transaction.
"""
from abc import ABC, abstractmethod

from app.models import Article, Comment, EmailLog, Tag, User


class UserRepository(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: int) -> User | None: ...

    @abstractmethod
    async def get_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    async def get_by_email(self, email: str) -> User | None: ...

    @abstractmethod
    async def find_conflicting_field(
        self, email: str | None, username: str | None, exclude_id: int | None = None
    ) -> str | None:
        """Return ``"email"`` or ``"username"`` when another user already holds it."""

    @abstractmethod
    async def create(self, **fields) -> User: ...

    @abstractmethod
    async def update(self, user: User, **fields) -> User: ...

    @abstractmethod
    async def count_published_articles(self, user_id: int) -> int: ...

    @abstractmethod
    async def adjust_follow_counters(self, follower_id: int, following_id: int, delta: int) -> None:
        """Atomically add *delta* to the follower's following_count and the target's followers_count."""

    @abstractmethod
    async def get_followers_count(self, user_id: int) -> int: ...

    @abstractmethod
    async def list_followers(
        self, user_id: int, limit: int, offset: int, order: str = "desc"
    ) -> tuple[list[User], int]: ...

    @abstractmethod
    async def list_following(
        self, user_id: int, limit: int, offset: int, order: str = "desc"
    ) -> tuple[list[User], int]: ...

    @abstractmethod
    async def count(self) -> int: ...


class ArticleRepository(ABC):
    @abstractmethod
    async def get_by_id(self, article_id: int, with_relations: bool = False) -> Article | None: ...

    @abstractmethod
    async def get_by_slug(self, slug: str, with_relations: bool = True) -> Article | None: ...

    @abstractmethod
    async def set_slug_if_free(self, article_id: int, slug: str) -> bool:
        """Move the article to *slug* unless another article holds it; True when moved."""

    @abstractmethod
    async def insert_if_slug_free(self, values: dict) -> bool:
        """Insert a row unless its slug is taken; True when inserted."""

    @abstractmethod
    async def search(
        self,
        *,
        limit: int,
        offset: int,
        tag: str | None = None,
        author: str | None = None,
        favorited: str | None = None,
        sort_by: str = "created_at",
        order: str = "desc",
    ) -> tuple[list[Article], int]: ...

    @abstractmethod
    async def feed(self, follower_id: int, limit: int, offset: int) -> tuple[list[Article], int]: ...

    @abstractmethod
    async def latest_for_tag(self, tag_id: int, limit: int) -> list[Article]: ...

    @abstractmethod
    async def set_tags(self, article: Article, tags: list[Tag]) -> None: ...

    @abstractmethod
    async def update(self, article: Article, **fields) -> Article: ...

    @abstractmethod
    async def delete(self, article_id: int) -> bool: ...

    @abstractmethod
    async def adjust_favorites_count(self, article_id: int, delta: int) -> None: ...

    @abstractmethod
    async def adjust_comments_count(self, article_id: int, delta: int) -> None: ...

    @abstractmethod
    async def get_favorites_count(self, article_id: int) -> int: ...

    @abstractmethod
    async def top_by_favorites(self, limit: int) -> list[Article]: ...

    @abstractmethod
    async def count(self) -> int: ...


class CommentRepository(ABC):
    @abstractmethod
    async def create(self, article_id: int, author_id: int, body: str) -> Comment: ...

    @abstractmethod
    async def get(self, comment_id: int, article_id: int) -> Comment | None: ...

    @abstractmethod
    async def delete(self, comment_id: int, article_id: int) -> int:
        """Delete the comment and return the number of rows removed."""

    @abstractmethod
    async def list_for_article(
        self, article_id: int, limit: int, offset: int
    ) -> tuple[list[Comment], int]: ...

    @abstractmethod
    async def count(self) -> int: ...


class TagRepository(ABC):
    @abstractmethod
    async def get_or_create_many(self, names: list[str]) -> list[Tag]: ...

    @abstractmethod
    async def get_by_slug(self, slug: str) -> Tag | None: ...

    @abstractmethod
    async def list_with_counts(self) -> list[tuple[Tag, int]]: ...


class FavoriteRepository(ABC):
    @abstractmethod
    async def add(self, user_id: int, article_id: int) -> bool:
        """Insert the join row; False when it already existed."""

    @abstractmethod
    async def remove(self, user_id: int, article_id: int) -> int:
        """Delete the join row and return the number of rows removed."""

    @abstractmethod
    async def favorited_ids(self, user_id: int, article_ids: list[int]) -> set[int]: ...


class FollowRepository(ABC):
    @abstractmethod
    async def add(self, follower_id: int, following_id: int) -> bool: ...

    @abstractmethod
    async def remove(self, follower_id: int, following_id: int) -> int: ...

    @abstractmethod
    async def following_ids(self, follower_id: int, user_ids: list[int]) -> set[int]: ...


class EmailLogRepository(ABC):
    @abstractmethod
    async def create(self, **fields) -> EmailLog: ...

    @abstractmethod
    async def list_for_job(self, job_id: str) -> list[EmailLog]: ...
