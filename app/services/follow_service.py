"""
Follow service: idempotent follow/unfollow toggles and follower lists.

The unique (follower_id, following_id) constraint is the concurrency gate.
A follow inserts the join row with ``ON CONFLICT DO NOTHING`` and bumps both
users' counters only when a row was actually inserted; an unfollow deletes
conditionally and decrements only when exactly one row went away.  Racing
requests therefore settle on one row and counters moved by exactly one.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import CacheManager
from app.database import after_commit
from app.events import EventBus, UserFollowed
from app.exceptions import NotFoundError, ValidationError
from app.repositories import Repositories
from app.security import TokenUser
from app.services.serializers import apply_following_flags, profile_to_dict

logger = logging.getLogger(__name__)


def _reject_self(viewer: TokenUser, user_id: int) -> None:
    if user_id == viewer.id:
        raise ValidationError("You cannot follow yourself", code="CANNOT_FOLLOW_SELF")


class FollowService:
    def __init__(self, repos: Repositories, cache: CacheManager, events: EventBus) -> None:
        self._repos = repos
        self._cache = cache
        self._events = events

    async def _target(self, db: AsyncSession, viewer: TokenUser, username: str):
        target = await self._repos.users(db).get_by_username(username)
        if target is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")
        # Token usernames go stale after a rename; only the id is authoritative.
        _reject_self(viewer, target.id)
        return target

    async def follow(self, db: AsyncSession, viewer: TokenUser, username: str) -> dict:
        target = await self._target(db, viewer, username)
        users = self._repos.users(db)

        inserted = await self._repos.follows(db).add(viewer.id, target.id)
        if inserted:
            await users.adjust_follow_counters(viewer.id, target.id, 1)
        else:
            logger.debug("User %d already follows %d", viewer.id, target.id)

        profile = profile_to_dict(target)
        profile["followers_count"] = await users.get_followers_count(target.id)
        profile["following"] = True

        self._invalidate(db, viewer, target)
        if inserted:
            after_commit(
                db,
                self._events.publish,
                UserFollowed(
                    follower_id=viewer.id,
                    follower_username=viewer.username,
                    following_id=target.id,
                    following_username=target.username,
                    following_email=target.email,
                ),
            )
        return {"profile": profile}

    async def unfollow(self, db: AsyncSession, viewer: TokenUser, username: str) -> dict:
        target = await self._target(db, viewer, username)
        users = self._repos.users(db)

        removed = await self._repos.follows(db).remove(viewer.id, target.id)
        if removed == 1:
            await users.adjust_follow_counters(viewer.id, target.id, -1)

        profile = profile_to_dict(target)
        profile["followers_count"] = await users.get_followers_count(target.id)
        profile["following"] = False

        self._invalidate(db, viewer, target)
        return {"profile": profile}

    async def _list(
        self,
        db: AsyncSession,
        username: str,
        viewer: TokenUser | None,
        limit: int,
        offset: int,
        order: str,
        followers: bool,
    ) -> dict:
        users = self._repos.users(db)
        user = await users.get_by_username(username)
        if user is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        lister = users.list_followers if followers else users.list_following
        rows, total = await lister(user.id, limit, offset, order)
        profiles = [profile_to_dict(row) for row in rows]
        await apply_following_flags(db, self._repos, viewer, profiles)
        return {"profiles": profiles, "total": total, "limit": limit, "offset": offset}

    async def list_followers(
        self, db: AsyncSession, username: str, viewer: TokenUser | None,
        limit: int, offset: int, order: str = "desc",
    ) -> dict:
        return await self._list(db, username, viewer, limit, offset, order, followers=True)

    async def list_following(
        self, db: AsyncSession, username: str, viewer: TokenUser | None,
        limit: int, offset: int, order: str = "desc",
    ) -> dict:
        return await self._list(db, username, viewer, limit, offset, order, followers=False)

    def _invalidate(self, db: AsyncSession, viewer: TokenUser, target) -> None:
        after_commit(db, self._cache.invalidate_profile, viewer.username, target.username)
        after_commit(db, self._cache.invalidate_user, viewer.id)
        after_commit(db, self._cache.invalidate_user, target.id)
