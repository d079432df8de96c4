from sqlalchemy import asc, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Article, Follow, User
from app.repositories import interfaces


class SqlUserRepository(interfaces.UserRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, user_id: int) -> User | None:
        return await self._session.get(User, user_id, populate_existing=True)

    async def get_by_username(self, username: str) -> User | None:
        result = await self._session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        result = await self._session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def find_conflicting_field(
        self, email: str | None, username: str | None, exclude_id: int | None = None
    ) -> str | None:
        conditions = []
        if email is not None:
            conditions.append(User.email == email)
        if username is not None:
            conditions.append(User.username == username)
        if not conditions:
            return None

        stmt = select(User.email, User.username).where(or_(*conditions))
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        for row in (await self._session.execute(stmt)).all():
            if email is not None and row.email == email:
                return "email"
            if username is not None and row.username == username:
                return "username"
        return None

    async def create(self, **fields) -> User:
        user = User(**fields)
        self._session.add(user)
        await self._session.flush()
        await self._session.refresh(user)
        return user

    async def update(self, user: User, **fields) -> User:
        for name, value in fields.items():
            setattr(user, name, value)
        await self._session.flush()
        await self._session.refresh(user)
        return user

    async def count_published_articles(self, user_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(Article)
            .where(Article.author_id == user_id, Article.is_published.is_(True))
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def adjust_follow_counters(self, follower_id: int, following_id: int, delta: int) -> None:
        following_stmt = (
            update(User)
            .where(User.id == follower_id)
            .values(following_count=User.following_count + delta)
        )
        followers_stmt = (
            update(User)
            .where(User.id == following_id)
            .values(followers_count=User.followers_count + delta)
        )
        if delta < 0:
            following_stmt = following_stmt.where(User.following_count > 0)
            followers_stmt = followers_stmt.where(User.followers_count > 0)
        await self._session.execute(following_stmt)
        await self._session.execute(followers_stmt)

    async def get_followers_count(self, user_id: int) -> int:
        stmt = select(User.followers_count).where(User.id == user_id)
        return (await self._session.execute(stmt)).scalar_one()

    async def _list_related(
        self, join_column, filter_column, user_id: int, limit: int, offset: int, order: str
    ) -> tuple[list[User], int]:
        total_stmt = select(func.count()).select_from(Follow).where(filter_column == user_id)
        total: int = (await self._session.execute(total_stmt)).scalar_one()

        direction = asc if order == "asc" else desc
        stmt = (
            select(User)
            .join(Follow, join_column == User.id)
            .where(filter_column == user_id)
            .order_by(direction(Follow.created_at), direction(Follow.id))
            .offset(offset)
            .limit(limit)
        )
        users = (await self._session.execute(stmt)).scalars().all()
        return list(users), total

    async def list_followers(
        self, user_id: int, limit: int, offset: int, order: str = "desc"
    ) -> tuple[list[User], int]:
        return await self._list_related(
            Follow.follower_id, Follow.following_id, user_id, limit, offset, order
        )

    async def list_following(
        self, user_id: int, limit: int, offset: int, order: str = "desc"
    ) -> tuple[list[User], int]:
        return await self._list_related(
            Follow.following_id, Follow.follower_id, user_id, limit, offset, order
        )

    async def count(self) -> int:
        return (await self._session.execute(select(func.count()).select_from(User))).scalar_one()
