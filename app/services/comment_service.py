"""
Comment service: comments on the Article aggregate.

``Article.comments_count`` moves in the same transaction as the comment row:
+1 on every insert, -1 only when the conditional delete removed exactly one
row, so a repeated delete is a 404 rather than a second decrement.  Comment
pages are cached per (article, limit, offset) and dropped on every write to
that article's comments.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import CacheManager, comments_key
from app.config import Settings
from app.database import after_commit
from app.exceptions import NotFoundError, ValidationError
from app.repositories import Repositories
from app.schemas import CommentCreate
from app.security import TokenUser, ensure_owner_or_admin
from app.services.serializers import apply_following_flags, comment_to_dict

logger = logging.getLogger(__name__)


class CommentService:
    def __init__(self, repos: Repositories, cache: CacheManager, settings: Settings) -> None:
        self._repos = repos
        self._cache = cache
        self._settings = settings

    async def _article_or_404(self, db: AsyncSession, article_id: int, viewer: TokenUser | None):
        article = await self._repos.articles(db).get_by_id(article_id)
        if article is None:
            raise NotFoundError("Article not found", code="ARTICLE_NOT_FOUND")
        if not article.is_published and not (
            viewer is not None and (viewer.id == article.author_id or viewer.is_admin)
        ):
            raise NotFoundError("Article not found", code="ARTICLE_NOT_FOUND")
        return article

    async def list_comments(
        self,
        db: AsyncSession,
        article_id: int,
        viewer: TokenUser | None,
        *,
        limit: int,
        offset: int,
    ) -> dict:
        cache_key = comments_key(article_id, limit, offset)
        page = await self._cache.get(cache_key)
        if not page:
            article = await self._article_or_404(db, article_id, viewer)
            rows, total = await self._repos.comments(db).list_for_article(article.id, limit, offset)
            page = {
                "comments": [comment_to_dict(c) for c in rows],
                "total": total,
                "limit": limit,
                "offset": offset,
            }
            if article.is_published:
                await self._cache.set(cache_key, page, ttl=self._settings.CACHE_TTL_LIST)

        await apply_following_flags(db, self._repos, viewer, [c["author"] for c in page["comments"]])
        return page

    async def add_comment(
        self, db: AsyncSession, author: TokenUser, article_id: int, data: CommentCreate
    ) -> dict:
        article = await self._article_or_404(db, article_id, author)
        if not article.is_published:
            raise ValidationError(
                "Cannot comment on an unpublished article", code="ARTICLE_NOT_PUBLISHED"
            )

        comment = await self._repos.comments(db).create(article.id, author.id, data.body)
        await self._repos.articles(db).adjust_comments_count(article.id, 1)
        logger.info("Comment %d added to article %d by user %d", comment.id, article.id, author.id)

        self._invalidate(db, article)
        return comment_to_dict(comment)

    async def delete_comment(
        self, db: AsyncSession, actor: TokenUser, article_id: int, comment_id: int
    ) -> None:
        article = await self._repos.articles(db).get_by_id(article_id)
        if article is None:
            raise NotFoundError("Article not found", code="ARTICLE_NOT_FOUND")

        comments = self._repos.comments(db)
        comment = await comments.get(comment_id, article.id)
        if comment is None:
            raise NotFoundError("Comment not found", code="COMMENT_NOT_FOUND")

        ensure_owner_or_admin(actor, comment.author_id, f"comment:{comment.id}")

        removed = await comments.delete(comment.id, article.id)
        if removed != 1:
            # Lost a race with another delete of the same comment.
            raise NotFoundError("Comment not found", code="COMMENT_NOT_FOUND")
        await self._repos.articles(db).adjust_comments_count(article.id, -1)

        self._invalidate(db, article)

    def _invalidate(self, db: AsyncSession, article) -> None:
        after_commit(db, self._cache.invalidate_comments, article.id)
        after_commit(db, self._cache.invalidate_article, article.slug)
