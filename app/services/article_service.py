"""
Article service: business logic for the Article aggregate.

Design notes
------------
- List and detail reads go through the cache-aside pattern.  List keys
  encode every parameter that affects the result and share the
  ``articles:list:`` prefix; detail keys are ``articles:detail:{slug}``.
  Only published articles are cached, and only in their viewer-independent
  form; ``favorited``/``following`` are overlaid per request.
- Every write invalidates the whole list prefix plus the detail key of each
  slug the article had before and after the write, once the transaction
  has committed.
- Slugs are claimed with an ``INSERT ... ON CONFLICT (slug) DO NOTHING``
  inside the write transaction, walking through suffixed candidates until
  one is free, so a colliding title yields a distinct slug, not an error.
  A title change on update moves the slug the same way, one savepoint per
  candidate.
- Service methods flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import CacheManager, article_detail_key, article_list_key
from app.config import Settings
from app.database import after_commit
from app.exceptions import InternalError, NotFoundError
from app.models import Article
from app.repositories import Repositories
from app.schemas import ArticleCreate, ArticleUpdate
from app.security import TokenUser, ensure_owner_or_admin
from app.slugs import slug_candidates, slugify
from app.services.serializers import apply_article_flags, article_to_dict

logger = logging.getLogger(__name__)


def _can_see_unpublished(viewer: TokenUser | None, article: Article) -> bool:
    return viewer is not None and (viewer.id == article.author_id or viewer.is_admin)


class ArticleService:
    def __init__(self, repos: Repositories, cache: CacheManager, settings: Settings) -> None:
        self._repos = repos
        self._cache = cache
        self._settings = settings

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_articles(
        self,
        db: AsyncSession,
        viewer: TokenUser | None,
        *,
        limit: int,
        offset: int,
        tag: str | None = None,
        author: str | None = None,
        favorited: str | None = None,
        sort_by: str = "created_at",
        order: str = "desc",
    ) -> dict:
        """
        Return a page of published articles.

        Two statements on a cache miss: a COUNT over the filtered set and
        the page itself with author and tags eager-loaded.
        """
        cache_key = article_list_key(
            limit=limit, offset=offset, tag=tag, author=author,
            favorited=favorited, sort_by=sort_by, order=order,
        )
        page = await self._cache.get(cache_key)
        if not page:
            rows, total = await self._repos.articles(db).search(
                limit=limit, offset=offset, tag=tag, author=author,
                favorited=favorited, sort_by=sort_by, order=order,
            )
            page = {
                "articles": [article_to_dict(a, include_body=False) for a in rows],
                "articles_count": total,
                "limit": limit,
                "offset": offset,
            }
            await self._cache.set(cache_key, page, ttl=self._settings.CACHE_TTL_LIST)

        await apply_article_flags(db, self._repos, viewer, page["articles"])
        return page

    async def feed(self, db: AsyncSession, viewer: TokenUser, *, limit: int, offset: int) -> dict:
        """Published articles by authors *viewer* follows, newest first (never cached)."""
        rows, total = await self._repos.articles(db).feed(viewer.id, limit, offset)
        articles = [article_to_dict(a, include_body=False) for a in rows]
        await apply_article_flags(db, self._repos, viewer, articles)
        return {"articles": articles, "articles_count": total, "limit": limit, "offset": offset}

    async def get_article(self, db: AsyncSession, slug: str, viewer: TokenUser | None) -> dict:
        cache_key = article_detail_key(slug)
        data = await self._cache.get(cache_key)
        if not data:
            article = await self._repos.articles(db).get_by_slug(slug)
            if article is None or (
                not article.is_published and not _can_see_unpublished(viewer, article)
            ):
                raise NotFoundError("Article not found", code="ARTICLE_NOT_FOUND")
            data = article_to_dict(article)
            if article.is_published:
                await self._cache.set(cache_key, data, ttl=self._settings.CACHE_TTL_DETAIL)

        await apply_article_flags(db, self._repos, viewer, [data])
        return data

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def _claim_slug(self, db: AsyncSession, base: str, values: dict) -> str:
        articles = self._repos.articles(db)
        for candidate in slug_candidates(base):
            if await articles.insert_if_slug_free({**values, "slug": candidate}):
                return candidate
            logger.debug("Slug %r taken, trying next candidate", candidate)
        raise InternalError("Could not generate a unique slug", code="SLUG_GENERATION_FAILED")

    async def _move_slug(self, db: AsyncSession, base: str, article_id: int) -> str:
        articles = self._repos.articles(db)
        for candidate in slug_candidates(base):
            if await articles.set_slug_if_free(article_id, candidate):
                return candidate
            logger.debug("Slug %r taken, trying next candidate", candidate)
        raise InternalError("Could not generate a unique slug", code="SLUG_GENERATION_FAILED")

    def _invalidate_after_commit(
        self, db: AsyncSession, *slugs: str, author: str | None = None
    ) -> None:
        after_commit(db, self._cache.invalidate_article, *slugs)
        after_commit(db, self._cache.invalidate_profile, author)

    async def create_article(self, db: AsyncSession, author: TokenUser, data: ArticleCreate) -> dict:
        articles = self._repos.articles(db)
        slug = await self._claim_slug(
            db,
            slugify(data.title),
            {
                "title": data.title,
                "description": data.description,
                "body": data.body,
                "is_published": data.is_published,
                "author_id": author.id,
            },
        )
        article = await articles.get_by_slug(slug, with_relations=False)

        if data.tag_list:
            tags = await self._repos.tags(db).get_or_create_many(data.tag_list)
            await articles.set_tags(article, tags)

        article = await articles.get_by_id(article.id, with_relations=True)
        logger.info("Article created: id=%d slug=%s", article.id, article.slug)

        self._invalidate_after_commit(db, slug, author=author.username)
        return article_to_dict(article)

    async def update_article(
        self, db: AsyncSession, actor: TokenUser, article_id: int, data: ArticleUpdate
    ) -> dict:
        articles = self._repos.articles(db)
        article = await articles.get_by_id(article_id, with_relations=True)
        if article is None:
            raise NotFoundError("Article not found", code="ARTICLE_NOT_FOUND")
        ensure_owner_or_admin(actor, article.author_id, f"article:{article.id}")

        old_slug = article.slug
        was_published = article.is_published
        changes = data.model_dump(exclude_unset=True)
        tag_names = changes.pop("tag_list", None)
        # Columns are NOT NULL; an explicit null means "leave unchanged".
        changes = {name: value for name, value in changes.items() if value is not None}

        # Re-generate the slug only when the title's own slug changes, so
        # editing punctuation or case keeps existing links working.
        new_base = None
        if "title" in changes:
            new_base = slugify(changes["title"])
            if new_base == slugify(article.title):
                new_base = None

        if changes:
            await articles.update(article, **changes)
        if new_base is not None:
            await self._move_slug(db, new_base, article.id)
        if tag_names is not None:
            tags = await self._repos.tags(db).get_or_create_many(tag_names)
            await articles.set_tags(article, tags)

        article = await articles.get_by_id(article_id, with_relations=True)
        self._invalidate_after_commit(db, old_slug, article.slug, author=article.author.username)
        if article.is_published != was_published:
            # Cached comment pages are served without a visibility check.
            after_commit(db, self._cache.invalidate_comments, article.id)
        return article_to_dict(article)

    async def delete_article(self, db: AsyncSession, actor: TokenUser, article_id: int) -> None:
        articles = self._repos.articles(db)
        article = await articles.get_by_id(article_id, with_relations=True)
        if article is None:
            raise NotFoundError("Article not found", code="ARTICLE_NOT_FOUND")
        ensure_owner_or_admin(actor, article.author_id, f"article:{article.id}")

        if not await articles.delete(article.id):
            raise NotFoundError("Article not found", code="ARTICLE_NOT_FOUND")
        logger.info("Article deleted: id=%d", article_id)

        self._invalidate_after_commit(db, article.slug, author=article.author.username)
        after_commit(db, self._cache.invalidate_comments, article_id)
