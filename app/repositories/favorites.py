from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Favorite
from app.repositories import interfaces
from app.repositories.base import insert_ignore_duplicate


class SqlFavoriteRepository(interfaces.FavoriteRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, user_id: int, article_id: int) -> bool:
        return await insert_ignore_duplicate(
            self._session,
            Favorite,
            {"user_id": user_id, "article_id": article_id},
            ["user_id", "article_id"],
        )

    async def remove(self, user_id: int, article_id: int) -> int:
        result = await self._session.execute(
            delete(Favorite).where(Favorite.user_id == user_id, Favorite.article_id == article_id)
        )
        return result.rowcount

    async def favorited_ids(self, user_id: int, article_ids: list[int]) -> set[int]:
        if not article_ids:
            return set()
        stmt = select(Favorite.article_id).where(
            Favorite.user_id == user_id, Favorite.article_id.in_(article_ids)
        )
        return set((await self._session.execute(stmt)).scalars().all())
