from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Article, Tag, article_tags
from app.repositories import interfaces
from app.repositories.base import insert_ignore_duplicate
from app.slugs import slugify


class SqlTagRepository(interfaces.TagRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_or_create_many(self, names: list[str]) -> list[Tag]:
        """
        Return a Tag for each name, creating the missing ones.

        Creation goes through the duplicate-tolerant insert, so two requests
        introducing the same tag concurrently both end up with the one row.
        A name whose slug is already taken by a differently-spelt tag
        resolves to that existing tag.
        """
        tags: list[Tag] = []
        seen_ids: set[int] = set()
        for name in names:
            slug = slugify(name)
            await insert_ignore_duplicate(self._session, Tag, {"name": name, "slug": slug})
            stmt = select(Tag).where(or_(Tag.name == name, Tag.slug == slug)).limit(1)
            tag = (await self._session.execute(stmt)).scalar_one()
            if tag.id not in seen_ids:
                seen_ids.add(tag.id)
                tags.append(tag)
        return tags

    async def get_by_slug(self, slug: str) -> Tag | None:
        result = await self._session.execute(select(Tag).where(Tag.slug == slug))
        return result.scalar_one_or_none()

    async def list_with_counts(self) -> list[tuple[Tag, int]]:
        published = (
            select(article_tags.c.tag_id, func.count().label("articles_count"))
            .join(Article, Article.id == article_tags.c.article_id)
            .where(Article.is_published.is_(True))
            .group_by(article_tags.c.tag_id)
            .subquery()
        )
        stmt = (
            select(Tag, func.coalesce(published.c.articles_count, 0))
            .outerjoin(published, published.c.tag_id == Tag.id)
            .order_by(Tag.name)
        )
        return [(tag, count) for tag, count in (await self._session.execute(stmt)).all()]
