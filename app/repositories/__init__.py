# Repositories package.
#
# One repository per aggregate, each bound to the AsyncSession it is
# constructed with.  Services never build repositories themselves: they
# receive a ``Repositories`` factory from the composition root and call
# e.g. ``self._repos.articles(db)`` so another store can be swapped in by
# supplying a different factory.
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories import interfaces
from app.repositories.articles import SqlArticleRepository
from app.repositories.comments import SqlCommentRepository
from app.repositories.email_logs import SqlEmailLogRepository
from app.repositories.favorites import SqlFavoriteRepository
from app.repositories.follows import SqlFollowRepository
from app.repositories.tags import SqlTagRepository
from app.repositories.users import SqlUserRepository


@dataclass(frozen=True)
class Repositories:
    users: Callable[[AsyncSession], interfaces.UserRepository]
    articles: Callable[[AsyncSession], interfaces.ArticleRepository]
    comments: Callable[[AsyncSession], interfaces.CommentRepository]
    tags: Callable[[AsyncSession], interfaces.TagRepository]
    favorites: Callable[[AsyncSession], interfaces.FavoriteRepository]
    follows: Callable[[AsyncSession], interfaces.FollowRepository]
    email_logs: Callable[[AsyncSession], interfaces.EmailLogRepository]


def sql_repositories() -> Repositories:
    return Repositories(
        users=SqlUserRepository,
        articles=SqlArticleRepository,
        comments=SqlCommentRepository,
        tags=SqlTagRepository,
        favorites=SqlFavoriteRepository,
        follows=SqlFollowRepository,
        email_logs=SqlEmailLogRepository,
    )
