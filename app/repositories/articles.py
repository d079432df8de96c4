from sqlalchemy import asc, delete, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.models import Article, Favorite, Follow, Tag, User, article_tags
from app.repositories import interfaces
from app.repositories.base import execute_ignore_duplicate, insert_ignore_duplicate

# Columns that are safe to sort by; guards against arbitrary attribute access.
SORTABLE_COLUMNS: frozenset[str] = frozenset({"created_at", "favorites_count", "comments_count"})


def _resolve_sort_column(sort_by: str):
    """Return the column for *sort_by*, falling back to ``created_at``."""
    if sort_by in SORTABLE_COLUMNS:
        return getattr(Article, sort_by)
    return Article.created_at


class SqlArticleRepository(interfaces.ArticleRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _with_relations(stmt):
        # joinedload for the many-to-one author, selectinload for the tag collection.
        return stmt.options(joinedload(Article.author), selectinload(Article.tags))

    async def get_by_id(self, article_id: int, with_relations: bool = False) -> Article | None:
        stmt = select(Article).where(Article.id == article_id)
        if with_relations:
            stmt = self._with_relations(stmt)
        stmt = stmt.execution_options(populate_existing=True)
        return (await self._session.execute(stmt)).unique().scalar_one_or_none()

    async def get_by_slug(self, slug: str, with_relations: bool = True) -> Article | None:
        stmt = select(Article).where(Article.slug == slug)
        if with_relations:
            stmt = self._with_relations(stmt)
        stmt = stmt.execution_options(populate_existing=True)
        return (await self._session.execute(stmt)).unique().scalar_one_or_none()

    async def set_slug_if_free(self, article_id: int, slug: str) -> bool:
        stmt = update(Article).where(Article.id == article_id).values(slug=slug)
        return await execute_ignore_duplicate(self._session, stmt)

    async def insert_if_slug_free(self, values: dict) -> bool:
        return await insert_ignore_duplicate(self._session, Article, values, ["slug"])

    def _filtered(self, tag: str | None, author: str | None, favorited: str | None):
        stmt = select(Article).where(Article.is_published.is_(True))
        if tag:
            stmt = stmt.where(Article.tags.any(Tag.slug == tag))
        if author:
            stmt = stmt.where(
                Article.author_id.in_(select(User.id).where(User.username == author))
            )
        if favorited:
            stmt = stmt.where(
                Article.id.in_(
                    select(Favorite.article_id)
                    .join(User, Favorite.user_id == User.id)
                    .where(User.username == favorited)
                )
            )
        return stmt

    async def _page(self, stmt, limit: int, offset: int, order_by) -> tuple[list[Article], int]:
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total: int = (await self._session.execute(count_stmt)).scalar_one()

        page_stmt = (
            self._with_relations(stmt)
            .order_by(*order_by)
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        articles = (await self._session.execute(page_stmt)).unique().scalars().all()
        return list(articles), total

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
    ) -> tuple[list[Article], int]:
        direction = asc if order == "asc" else desc
        order_by = (direction(_resolve_sort_column(sort_by)), direction(Article.id))
        return await self._page(self._filtered(tag, author, favorited), limit, offset, order_by)

    async def feed(self, follower_id: int, limit: int, offset: int) -> tuple[list[Article], int]:
        stmt = select(Article).where(
            Article.is_published.is_(True),
            Article.author_id.in_(
                select(Follow.following_id).where(Follow.follower_id == follower_id)
            ),
        )
        return await self._page(stmt, limit, offset, (desc(Article.created_at), desc(Article.id)))

    async def latest_for_tag(self, tag_id: int, limit: int) -> list[Article]:
        stmt = self._with_relations(
            select(Article)
            .join(article_tags, article_tags.c.article_id == Article.id)
            .where(article_tags.c.tag_id == tag_id, Article.is_published.is_(True))
            .order_by(desc(Article.created_at), desc(Article.id))
            .limit(limit)
        ).execution_options(populate_existing=True)
        return list((await self._session.execute(stmt)).unique().scalars().all())

    async def set_tags(self, article: Article, tags: list[Tag]) -> None:
        # Replace the association rows directly; the collection is noload.
        await self._session.execute(
            delete(article_tags).where(article_tags.c.article_id == article.id)
        )
        if tags:
            await self._session.execute(
                article_tags.insert(),
                [{"article_id": article.id, "tag_id": tag.id} for tag in tags],
            )

    async def update(self, article: Article, **fields) -> Article:
        for name, value in fields.items():
            setattr(article, name, value)
        await self._session.flush()
        return article

    async def delete(self, article_id: int) -> bool:
        result = await self._session.execute(delete(Article).where(Article.id == article_id))
        return result.rowcount == 1

    async def _adjust_counter(self, column, article_id: int, delta: int) -> None:
        stmt = update(Article).where(Article.id == article_id).values({column: column + delta})
        if delta < 0:
            stmt = stmt.where(column > 0)
        await self._session.execute(stmt)

    async def adjust_favorites_count(self, article_id: int, delta: int) -> None:
        await self._adjust_counter(Article.favorites_count, article_id, delta)

    async def adjust_comments_count(self, article_id: int, delta: int) -> None:
        await self._adjust_counter(Article.comments_count, article_id, delta)

    async def get_favorites_count(self, article_id: int) -> int:
        stmt = select(Article.favorites_count).where(Article.id == article_id)
        return (await self._session.execute(stmt)).scalar_one()

    async def top_by_favorites(self, limit: int) -> list[Article]:
        stmt = self._with_relations(
            select(Article)
            .where(Article.is_published.is_(True))
            .order_by(desc(Article.favorites_count), desc(Article.id))
            .limit(limit)
        ).execution_options(populate_existing=True)
        return list((await self._session.execute(stmt)).unique().scalars().all())

    async def count(self) -> int:
        return (await self._session.execute(select(func.count()).select_from(Article))).scalar_one()
