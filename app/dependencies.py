from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.container import Container
from app.exceptions import ForbiddenError, UnauthorizedError
from app.models import Role
from app.security import ACCESS, TokenUser

_bearer = HTTPBearer(auto_error=False)


class ListParams:
    """
    Reusable FastAPI dependency that parses and validates limit/offset
    pagination query parameters.

    Usage in a router::

        @router.get("/articles")
        async def list_articles(page: ListParams = Depends()):
            ...

    Attributes
    ----------
    limit:
        Number of items per page, clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.
    offset:
        Number of items to skip.
    """

    def __init__(
        self,
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=99,
            description="Number of items returned (max 99).",
        ),
        offset: int = Query(
            0,
            ge=0,
            description="Number of items to skip.",
        ),
    ) -> None:
        # Respect the application-level ceiling even though the schema
        # already validates le=99, so a settings change is sufficient.
        self.limit = min(limit, settings.MAX_PAGE_SIZE)
        self.offset = offset


class ArticleFilters:
    """Filter and sort parameters for the article list."""

    def __init__(
        self,
        tag: str | None = Query(None, description="Tag slug."),
        author: str | None = Query(None, description="Author username."),
        favorited: str | None = Query(None, description="Username whose favorites to list."),
        sort_by: str = Query(
            "created_at",
            pattern="^(created_at|favorites_count|comments_count)$",
            description="Column to sort results by.",
        ),
        order: str = Query(
            "desc",
            pattern="^(asc|desc)$",
            description="Sort direction: 'asc' or 'desc'.",
        ),
    ) -> None:
        self.tag = tag
        self.author = author
        self.favorited = favorited
        self.sort_by = sort_by
        self.order = order


def get_container(request: Request) -> Container:
    return request.app.state.container


def _decode(container: Container, credentials: HTTPAuthorizationCredentials | None) -> TokenUser | None:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return container.tokens.decode(credentials.credentials, ACCESS)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    container: Container = Depends(get_container),
) -> TokenUser:
    user = _decode(container, credentials)
    if user is None:
        raise UnauthorizedError("Authentication required", code="UNAUTHORIZED")
    if not user.is_active:
        raise UnauthorizedError("Account is disabled", code="ACCOUNT_DISABLED")
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    container: Container = Depends(get_container),
) -> TokenUser | None:
    """Like ``get_current_user`` but anonymous requests pass through as None.

    A token that is present but invalid is still rejected.
    """
    user = _decode(container, credentials)
    if user is not None and not user.is_active:
        raise UnauthorizedError("Account is disabled", code="ACCOUNT_DISABLED")
    return user


def require_roles(*roles: Role):
    allowed = {role.value for role in roles}

    async def checker(user: TokenUser = Depends(get_current_user)) -> TokenUser:
        if user.role not in allowed:
            raise ForbiddenError("Insufficient permissions")
        return user

    return checker
