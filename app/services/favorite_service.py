"""
Favorite service: idempotent favorite/unfavorite toggles.

``Article.favorites_count`` is only ever moved by ``UPDATE ... SET
favorites_count = favorites_count +/- 1`` in the same transaction as the
join-row insert/delete, and only when that insert/delete touched a row.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import CacheManager
from app.database import after_commit
from app.exceptions import NotFoundError, ValidationError
from app.repositories import Repositories
from app.security import TokenUser

logger = logging.getLogger(__name__)


class FavoriteService:
    def __init__(self, repos: Repositories, cache: CacheManager) -> None:
        self._repos = repos
        self._cache = cache

    async def _article_or_404(self, db: AsyncSession, article_id: int):
        article = await self._repos.articles(db).get_by_id(article_id)
        if article is None:
            raise NotFoundError("Article not found", code="ARTICLE_NOT_FOUND")
        return article

    @staticmethod
    def _state(article, favorites_count: int, favorited: bool) -> dict:
        return {
            "article": {
                "id": article.id,
                "slug": article.slug,
                "title": article.title,
                "favorites_count": favorites_count,
                "favorited": favorited,
            }
        }

    async def favorite(self, db: AsyncSession, user: TokenUser, article_id: int) -> dict:
        article = await self._article_or_404(db, article_id)
        if not article.is_published:
            raise ValidationError(
                "Cannot favorite an unpublished article", code="ARTICLE_NOT_PUBLISHED"
            )

        articles = self._repos.articles(db)
        if await self._repos.favorites(db).add(user.id, article.id):
            await articles.adjust_favorites_count(article.id, 1)
        else:
            logger.debug("Article %d already favorited by user %d", article.id, user.id)

        count = await articles.get_favorites_count(article.id)
        after_commit(db, self._cache.invalidate_article, article.slug)
        return self._state(article, count, True)

    async def unfavorite(self, db: AsyncSession, user: TokenUser, article_id: int) -> dict:
        article = await self._article_or_404(db, article_id)

        articles = self._repos.articles(db)
        removed = await self._repos.favorites(db).remove(user.id, article.id)
        if removed == 1:
            await articles.adjust_favorites_count(article.id, -1)

        count = await articles.get_favorites_count(article.id)
        after_commit(db, self._cache.invalidate_article, article.slug)
        return self._state(article, count, False)
