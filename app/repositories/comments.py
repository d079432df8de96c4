from sqlalchemy import delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.models import Comment
from app.repositories import interfaces


class SqlCommentRepository(interfaces.CommentRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, article_id: int, author_id: int, body: str) -> Comment:
        comment = Comment(article_id=article_id, author_id=author_id, body=body)
        self._session.add(comment)
        await self._session.flush()
        return await self.get(comment.id, article_id)

    async def get(self, comment_id: int, article_id: int) -> Comment | None:
        stmt = (
            select(Comment)
            .where(Comment.id == comment_id, Comment.article_id == article_id)
            .options(joinedload(Comment.author))
            .execution_options(populate_existing=True)
        )
        return (await self._session.execute(stmt)).unique().scalar_one_or_none()

    async def delete(self, comment_id: int, article_id: int) -> int:
        result = await self._session.execute(
            delete(Comment).where(Comment.id == comment_id, Comment.article_id == article_id)
        )
        return result.rowcount

    async def list_for_article(
        self, article_id: int, limit: int, offset: int
    ) -> tuple[list[Comment], int]:
        total_stmt = select(func.count()).select_from(Comment).where(Comment.article_id == article_id)
        total: int = (await self._session.execute(total_stmt)).scalar_one()

        stmt = (
            select(Comment)
            .where(Comment.article_id == article_id)
            .options(joinedload(Comment.author))
            .order_by(desc(Comment.created_at), desc(Comment.id))
            .offset(offset)
            .limit(limit)
        )
        comments = (await self._session.execute(stmt)).unique().scalars().all()
        return list(comments), total

    async def count(self) -> int:
        return (await self._session.execute(select(func.count()).select_from(Comment))).scalar_one()
