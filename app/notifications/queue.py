"""
Durable job queue abstraction.

The contract is ``enqueue(job_id, job_name, payload) -> bool``: adding a job
whose id is already known is a no-op that returns False.  Notification
listeners derive job ids from the triggering entities, which makes
re-publishing the same domain event harmless.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Protocol

from arq.connections import ArqRedis, RedisSettings, create_pool

logger = logging.getLogger(__name__)


@dataclass
class Job:
    job_id: str
    name: str
    payload: dict[str, Any]
    attempts: int = 0
    errors: list[str] = field(default_factory=list)


class JobQueue(Protocol):
    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def enqueue(self, job_id: str, job_name: str, payload: dict[str, Any]) -> bool: ...


class ArqJobQueue:
    """
    Redis-backed queue consumed by the arq worker in
    ``app.notifications.worker``.

    arq refuses a job whose id is still queued or whose result is still
    retained (``keep_result`` on the worker), returning None from
    ``enqueue_job``.
    """

    def __init__(self, redis_url: str, queue_name: str) -> None:
        self._redis_url = redis_url
        self._queue_name = queue_name
        self._pool: ArqRedis | None = None

    async def connect(self) -> None:
        if self._pool is not None:
            return
        self._pool = await create_pool(RedisSettings.from_dsn(self._redis_url))
        logger.info("Job queue connected (queue=%s)", self._queue_name)

    async def disconnect(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.aclose()

    async def enqueue(self, job_id: str, job_name: str, payload: dict[str, Any]) -> bool:
        if self._pool is None:
            await self.connect()
        job = await self._pool.enqueue_job(
            job_name,
            payload,
            _job_id=job_id,
            _queue_name=self._queue_name,
        )
        return job is not None


class InMemoryJobQueue:
    """
    Process-local queue with explicit ``dequeue``/``ack``.

    Job ids are remembered after acknowledgement so that a completed job is
    never added twice.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, Job] = {}
        self._pending: deque[str] = deque()
        self.completed: set[str] = set()
        self.dead: set[str] = set()

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None

    async def enqueue(self, job_id: str, job_name: str, payload: dict[str, Any]) -> bool:
        if job_id in self.jobs:
            return False
        self.jobs[job_id] = Job(job_id=job_id, name=job_name, payload=payload)
        self._pending.append(job_id)
        return True

    async def dequeue(self) -> Job | None:
        if not self._pending:
            return None
        job = self.jobs[self._pending.popleft()]
        job.attempts += 1
        return job

    async def ack(self, job_id: str) -> None:
        self.completed.add(job_id)

    async def nack(self, job_id: str, error: str, max_tries: int) -> None:
        """Record a failed attempt; requeue until *max_tries*, then mark dead."""
        job = self.jobs[job_id]
        job.errors.append(error)
        if job.attempts >= max_tries:
            self.dead.add(job_id)
            logger.error("Job %s dead after %d attempts: %s", job_id, job.attempts, error)
        else:
            self._pending.append(job_id)

    @property
    def pending_count(self) -> int:
        return len(self._pending)


def create_job_queue(settings) -> JobQueue:
    if settings.JOB_QUEUE_BACKEND == "memory":
        return InMemoryJobQueue()
    if settings.JOB_QUEUE_BACKEND == "arq":
        return ArqJobQueue(settings.REDIS_URL, settings.MAIL_QUEUE_NAME)
    raise ValueError(f"Unknown JOB_QUEUE_BACKEND: {settings.JOB_QUEUE_BACKEND!r}")
