import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.middleware import install_query_counter

logger = logging.getLogger(__name__)

_AFTER_COMMIT_KEY = "after_commit"


def _engine_options(url: str) -> dict:
    options = {"echo": settings.DEBUG, "pool_pre_ping": True}
    # Join-row toggles rely on unique constraints, not snapshot reads.
    if url.startswith("postgresql"):
        options["isolation_level"] = "READ COMMITTED"
    return options


# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Post-commit hooks
# ---------------------------------------------------------------------------

def after_commit(
    session: AsyncSession, callback: Callable[..., Awaitable[Any]], *args: Any
) -> None:
    """
    Queue ``callback(*args)`` to run once *session* has committed.

    Cache invalidation and event publishing go through here: run before the
    commit, a concurrent reader could re-cache the old row, and a rolled
    back write would still trigger its notification.
    """
    session.info.setdefault(_AFTER_COMMIT_KEY, []).append((callback, args))


def discard_after_commit(session: AsyncSession) -> None:
    session.info.pop(_AFTER_COMMIT_KEY, None)


async def commit(session: AsyncSession) -> None:
    """Commit *session*, then run the hooks queued with ``after_commit``."""
    await session.commit()
    for callback, args in session.info.pop(_AFTER_COMMIT_KEY, []):
        try:
            await callback(*args)
        except Exception:
            # The write is durable; a failed side effect must not turn it into an error.
            logger.exception(
                "After-commit hook %s failed", getattr(callback, "__qualname__", repr(callback))
            )


@asynccontextmanager
async def transaction(factory: async_sessionmaker[AsyncSession]):
    """Session scope that commits on success and drops queued hooks on failure."""
    async with factory() as session:
        try:
            yield session
        except Exception:
            discard_after_commit(session)
            await session.rollback()
            raise
        await commit(session)


async def get_db():
    async with transaction(async_session) as session:
        yield session
