"""
Auth service: registration, login and token refresh.

Registration publishes ``UserRegistered`` once the user row is committed; the
notification listener turns it into the welcome-email job.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import after_commit
from app.events import EventBus, UserRegistered
from app.exceptions import ConflictError, UnauthorizedError
from app.models import Role
from app.repositories import Repositories
from app.schemas import LoginRequest, RegisterRequest
from app.security import REFRESH, TokenService, hash_password, verify_password
from app.services.serializers import user_to_dict

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, repos: Repositories, tokens: TokenService, events: EventBus) -> None:
        self._repos = repos
        self._tokens = tokens
        self._events = events

    def _session_payload(self, user) -> dict:
        return {"user": user_to_dict(user), **self._tokens.issue_pair(user)}

    async def register(self, db: AsyncSession, data: RegisterRequest) -> dict:
        users = self._repos.users(db)
        email = data.email.lower()

        conflict = await users.find_conflicting_field(email, data.username)
        if conflict == "email":
            raise ConflictError("Email already registered", code="EMAIL_TAKEN")
        if conflict == "username":
            raise ConflictError("Username already taken", code="USERNAME_TAKEN")

        # A concurrent registration that slips past the check above fails on
        # the unique constraint and is translated to 409 by the error handler.
        user = await users.create(
            email=email,
            username=data.username,
            password_hash=hash_password(data.password),
            role=Role.USER,
            is_active=True,
        )
        logger.info("User registered: id=%d", user.id)

        after_commit(
            db,
            self._events.publish,
            UserRegistered(user_id=user.id, email=user.email, username=user.username),
        )
        return self._session_payload(user)

    async def login(self, db: AsyncSession, data: LoginRequest) -> dict:
        user = await self._repos.users(db).get_by_email(data.email.lower())
        if user is None or not verify_password(data.password, user.password_hash):
            raise UnauthorizedError("Invalid email or password", code="INVALID_CREDENTIALS")
        if not user.is_active:
            raise UnauthorizedError("Account is disabled", code="ACCOUNT_DISABLED")
        return self._session_payload(user)

    async def refresh(self, db: AsyncSession, refresh_token: str) -> dict:
        identity = self._tokens.decode(refresh_token, REFRESH)
        user = await self._repos.users(db).get_by_id(identity.id)
        if user is None:
            raise UnauthorizedError("User no longer exists", code="INVALID_TOKEN")
        if not user.is_active:
            raise UnauthorizedError("Account is disabled", code="ACCOUNT_DISABLED")
        return self._session_payload(user)
