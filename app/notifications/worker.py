"""
Background mail worker.

Run with::

    arq app.notifications.worker.WorkerSettings

Each ``send_email`` job is retried with exponential backoff
(``MAIL_JOB_BACKOFF_SECONDS * 2 ** (try - 1)``) until
``MAIL_JOB_MAX_TRIES``; after that the failure is recorded by arq and kept
for ``MAIL_JOB_KEEP_RESULT_SECONDS`` for inspection.
"""
import logging

from arq import Retry, func
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.container import build_container
from app.database import async_session
from app.logging_config import setup_logging
from app.notifications.listener import SEND_EMAIL_JOB
from app.notifications.mail_service import MailService
from app.notifications.queue import InMemoryJobQueue

logger = logging.getLogger(__name__)


def backoff_seconds(job_try: int, base: int) -> int:
    return base * 2 ** (job_try - 1)


async def process_email_job(
    session_factory: async_sessionmaker[AsyncSession],
    mail_service: MailService,
    payload: dict,
    job_id: str | None,
) -> bool:
    """Send one email in its own session; the audit row is committed even on failure."""
    async with session_factory() as db:
        try:
            return await mail_service.send_email(db, payload, job_id)
        finally:
            await db.commit()


async def send_email(ctx: dict, payload: dict) -> bool:
    job_id = ctx.get("job_id")
    job_try = ctx.get("job_try", 1)
    container = ctx["container"]
    config = container.settings

    try:
        return await process_email_job(ctx["session_factory"], container.mail_service, payload, job_id)
    except Exception as exc:
        if job_try >= config.MAIL_JOB_MAX_TRIES:
            logger.error(
                "Email job %s failed permanently after %d attempt(s): %s", job_id, job_try, exc
            )
            raise
        delay = backoff_seconds(job_try, config.MAIL_JOB_BACKOFF_SECONDS)
        logger.warning(
            "Email job %s failed (attempt %d/%d), retrying in %ds: %s",
            job_id, job_try, config.MAIL_JOB_MAX_TRIES, delay, exc,
        )
        raise Retry(defer=delay) from exc


async def run_pending_jobs(
    queue: InMemoryJobQueue,
    session_factory: async_sessionmaker[AsyncSession],
    mail_service: MailService,
    max_tries: int,
) -> int:
    """
    Drain an in-memory queue in-process (used by single-process setups and
    tests).  Returns the number of jobs that completed.
    """
    completed = 0
    while (job := await queue.dequeue()) is not None:
        if job.name != SEND_EMAIL_JOB:
            logger.warning("Unknown job %s (%s), dropping", job.job_id, job.name)
            await queue.ack(job.job_id)
            continue
        try:
            await process_email_job(session_factory, mail_service, job.payload, job.job_id)
        except Exception as exc:
            await queue.nack(job.job_id, str(exc), max_tries)
            continue
        await queue.ack(job.job_id)
        completed += 1
    return completed


async def startup(ctx: dict) -> None:
    setup_logging(settings)
    ctx["container"] = build_container(settings)
    ctx["session_factory"] = async_session
    logger.info("Mail worker started (queue=%s)", settings.MAIL_QUEUE_NAME)


async def shutdown(ctx: dict) -> None:
    container = ctx.get("container")
    if container is not None:
        await container.shutdown()


class WorkerSettings:
    functions = [func(send_email, name=SEND_EMAIL_JOB, max_tries=settings.MAIL_JOB_MAX_TRIES)]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    queue_name = settings.MAIL_QUEUE_NAME
    max_tries = settings.MAIL_JOB_MAX_TRIES
    keep_result = settings.MAIL_JOB_KEEP_RESULT_SECONDS
