from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Follow
from app.repositories import interfaces
from app.repositories.base import insert_ignore_duplicate


class SqlFollowRepository(interfaces.FollowRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def add(self, follower_id: int, following_id: int) -> bool:
        return await insert_ignore_duplicate(
            self._session,
            Follow,
            {"follower_id": follower_id, "following_id": following_id},
            ["follower_id", "following_id"],
        )

    async def remove(self, follower_id: int, following_id: int) -> int:
        result = await self._session.execute(
            delete(Follow).where(
                Follow.follower_id == follower_id, Follow.following_id == following_id
            )
        )
        return result.rowcount

    async def following_ids(self, follower_id: int, user_ids: list[int]) -> set[int]:
        if not user_ids:
            return set()
        stmt = select(Follow.following_id).where(
            Follow.follower_id == follower_id, Follow.following_id.in_(user_ids)
        )
        return set((await self._session.execute(stmt)).scalars().all())
