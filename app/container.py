"""
Composition root.

``build_container`` wires every long-lived collaborator once per process:
the cache, the event bus and its notification listener, the job queue,
storage, the mail service, the repositories factory and the services.  The
FastAPI app keeps the result on ``app.state.container``; the mail worker
builds its own.  Tests pass in-memory backends through the keyword
overrides.
"""
import logging
from dataclasses import dataclass

from app.cache import CacheBackend, CacheManager, create_cache_backend
from app.config import Settings
from app.events import EventBus
from app.notifications.listener import NotificationListener
from app.notifications.mail_service import MailService
from app.notifications.providers import MailProvider, create_mail_provider
from app.notifications.queue import JobQueue, create_job_queue
from app.repositories import Repositories, sql_repositories
from app.security import TokenService
from app.services.article_service import ArticleService
from app.services.auth_service import AuthService
from app.services.comment_service import CommentService
from app.services.favorite_service import FavoriteService
from app.services.follow_service import FollowService
from app.services.tag_service import TagService
from app.services.user_service import UserService
from app.storage import StorageProvider, create_storage_provider

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    cache: CacheManager
    events: EventBus
    job_queue: JobQueue
    storage: StorageProvider
    mail_provider: MailProvider
    mail_service: MailService
    repos: Repositories
    tokens: TokenService
    auth: AuthService
    users: UserService
    articles: ArticleService
    comments: CommentService
    tags: TagService
    favorites: FavoriteService
    follows: FollowService

    async def startup(self) -> None:
        # Both backends are optional at runtime: without Redis the cache
        # falls through to the database and notifications are only logged.
        try:
            await self.cache.connect()
        except Exception:
            logger.warning("Cache backend unavailable, continuing without cache", exc_info=True)
        try:
            await self.job_queue.connect()
        except Exception:
            logger.warning("Job queue unavailable, notifications will not be queued", exc_info=True)

    async def shutdown(self) -> None:
        try:
            await self.job_queue.disconnect()
        except Exception:
            logger.warning("Error while closing the job queue", exc_info=True)
        await self.cache.disconnect()


def build_container(
    settings: Settings,
    *,
    cache_backend: CacheBackend | None = None,
    job_queue: JobQueue | None = None,
    mail_provider: MailProvider | None = None,
    storage: StorageProvider | None = None,
    repos: Repositories | None = None,
) -> Container:
    cache = CacheManager(cache_backend or create_cache_backend(settings))
    events = EventBus()
    job_queue = job_queue or create_job_queue(settings)
    storage = storage or create_storage_provider(settings)
    mail_provider = mail_provider or create_mail_provider(settings)
    repos = repos or sql_repositories()
    tokens = TokenService(settings)

    NotificationListener(job_queue, settings).register(events)

    return Container(
        settings=settings,
        cache=cache,
        events=events,
        job_queue=job_queue,
        storage=storage,
        mail_provider=mail_provider,
        mail_service=MailService(mail_provider, repos, settings),
        repos=repos,
        tokens=tokens,
        auth=AuthService(repos, tokens, events),
        users=UserService(repos, cache, storage, settings),
        articles=ArticleService(repos, cache, settings),
        comments=CommentService(repos, cache, settings),
        tags=TagService(repos, cache, settings),
        favorites=FavoriteService(repos, cache),
        follows=FollowService(repos, cache, events),
    )
