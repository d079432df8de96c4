"""
User service: the authenticated user's own account and public profiles.

``users:{id}:me`` holds the private account view for a short TTL and
``profiles:{username}`` the public profile; both are dropped once a write that
changes what they show (account edits, avatar uploads, follows) commits.
Article, comment and tag pages embed author summaries and go with them.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import CacheManager, current_user_key, profile_key
from app.config import Settings
from app.database import after_commit
from app.exceptions import ConflictError, NotFoundError
from app.repositories import Repositories
from app.schemas import UserUpdate
from app.security import TokenUser, hash_password
from app.services.serializers import apply_following_flags, profile_to_dict, user_to_dict
from app.storage import StorageProvider, validate_image

logger = logging.getLogger(__name__)

AVATAR_FOLDER = "avatars"


class UserService:
    def __init__(
        self,
        repos: Repositories,
        cache: CacheManager,
        storage: StorageProvider,
        settings: Settings,
    ) -> None:
        self._repos = repos
        self._cache = cache
        self._storage = storage
        self._settings = settings

    async def _get_user_or_404(self, db: AsyncSession, user_id: int):
        user = await self._repos.users(db).get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")
        return user

    async def get_current(self, db: AsyncSession, user_id: int) -> dict:
        cache_key = current_user_key(user_id)
        cached = await self._cache.get(cache_key)
        if cached:
            return cached

        data = user_to_dict(await self._get_user_or_404(db, user_id))
        await self._cache.set(cache_key, data, ttl=self._settings.CACHE_TTL_SHORT)
        return data

    async def update_current(self, db: AsyncSession, user_id: int, data: UserUpdate) -> dict:
        users = self._repos.users(db)
        user = await self._get_user_or_404(db, user_id)
        old_username = user.username

        changes = data.model_dump(exclude_unset=True)
        if "email" in changes and changes["email"] is not None:
            changes["email"] = changes["email"].lower()

        conflict = await users.find_conflicting_field(
            changes.get("email"), changes.get("username"), exclude_id=user_id
        )
        if conflict == "email":
            raise ConflictError("Email already registered", code="EMAIL_TAKEN")
        if conflict == "username":
            raise ConflictError("Username already taken", code="USERNAME_TAKEN")

        password = changes.pop("password", None)
        if password:
            changes["password_hash"] = hash_password(password)
        # Required columns cannot be cleared.
        for required in ("email", "username"):
            if changes.get(required, "") is None:
                changes.pop(required)

        user = await users.update(user, **changes)
        self._invalidate(db, user_id, old_username, user.username)
        return user_to_dict(user)

    async def upload_avatar(
        self,
        db: AsyncSession,
        user_id: int,
        content: bytes,
        filename: str,
        content_type: str | None,
    ) -> dict:
        validate_image(content, content_type, self._settings.MAX_AVATAR_BYTES)
        user = await self._get_user_or_404(db, user_id)
        previous = user.avatar

        stored = await self._storage.upload(content, filename, content_type, AVATAR_FOLDER)
        user = await self._repos.users(db).update(user, avatar=stored.url)

        if previous:
            after_commit(db, self._delete_previous_avatar, previous)
        self._invalidate(db, user_id, user.username)
        return user_to_dict(user)

    async def _delete_previous_avatar(self, url: str) -> None:
        key = self._storage.key_for_url(url)
        if key is None:
            return
        try:
            await self._storage.delete(key)
        except Exception:
            # The new avatar is already stored; an orphaned file is only logged.
            logger.warning("Could not delete previous avatar %s", key, exc_info=True)

    async def get_profile(self, db: AsyncSession, username: str, viewer: TokenUser | None) -> dict:
        cache_key = profile_key(username)
        profile = await self._cache.get(cache_key)
        if not profile:
            users = self._repos.users(db)
            user = await users.get_by_username(username)
            if user is None:
                raise NotFoundError("User not found", code="USER_NOT_FOUND")
            profile = profile_to_dict(user, await users.count_published_articles(user.id))
            await self._cache.set(cache_key, profile, ttl=self._settings.CACHE_TTL_DETAIL)

        await apply_following_flags(db, self._repos, viewer, [profile])
        return profile

    def _invalidate(self, db: AsyncSession, user_id: int, *usernames: str) -> None:
        after_commit(db, self._cache.invalidate_user, user_id)
        after_commit(db, self._cache.invalidate_profile, *usernames)
        after_commit(db, self._cache.invalidate_author_views)
