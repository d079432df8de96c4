"""Tag listing and per-tag article pages, both behind the ``tags:`` cache prefix."""
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import TAG_LIST_KEY, CacheManager, tag_detail_key
from app.config import Settings
from app.exceptions import NotFoundError
from app.repositories import Repositories
from app.security import TokenUser
from app.services.serializers import apply_article_flags, article_to_dict, tag_to_dict

LATEST_ARTICLES_PER_TAG = 20


class TagService:
    def __init__(self, repos: Repositories, cache: CacheManager, settings: Settings) -> None:
        self._repos = repos
        self._cache = cache
        self._settings = settings

    async def list_tags(self, db: AsyncSession) -> dict:
        cached = await self._cache.get(TAG_LIST_KEY)
        if cached:
            return cached

        rows = await self._repos.tags(db).list_with_counts()
        data = {"tags": [tag_to_dict(tag, count) for tag, count in rows]}
        await self._cache.set(TAG_LIST_KEY, data, ttl=self._settings.CACHE_TTL_TAGS)
        return data

    async def get_tag(self, db: AsyncSession, slug: str, viewer: TokenUser | None) -> dict:
        cache_key = tag_detail_key(slug)
        data = await self._cache.get(cache_key)
        if not data:
            tag = await self._repos.tags(db).get_by_slug(slug)
            if tag is None:
                raise NotFoundError("Tag not found", code="TAG_NOT_FOUND")
            articles = await self._repos.articles(db).latest_for_tag(
                tag.id, LATEST_ARTICLES_PER_TAG
            )
            data = {
                "tag": tag_to_dict(tag),
                "articles": [article_to_dict(a, include_body=False) for a in articles],
            }
            await self._cache.set(cache_key, data, ttl=self._settings.CACHE_TTL_DETAIL)

        await apply_article_flags(db, self._repos, viewer, data["articles"])
        return data
