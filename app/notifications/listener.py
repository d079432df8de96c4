import logging

from app.config import Settings
from app.events import EventBus, UserFollowed, UserRegistered
from app.notifications import templates
from app.notifications.queue import JobQueue

logger = logging.getLogger(__name__)

SEND_EMAIL_JOB = "send_email"


def welcome_job_id(user_id: int) -> str:
    return f"welcome_{user_id}"


def follow_job_id(follower_id: int, following_id: int) -> str:
    return f"follow_{follower_id}_{following_id}"


class NotificationListener:
    """
    Turns domain events into ``send_email`` jobs.

    Job ids are derived from the entity ids, so a re-published event maps to
    a job the queue already holds and is dropped.  Queue failures are logged
    and swallowed: registration and follows must not depend on the mail
    infrastructure being up.
    """

    def __init__(self, queue: JobQueue, settings: Settings) -> None:
        self._queue = queue
        self._app_url = settings.APP_URL.rstrip("/")
        self._app_name = settings.APP_NAME

    def register(self, bus: EventBus) -> None:
        bus.subscribe(UserRegistered, self.on_user_registered)
        bus.subscribe(UserFollowed, self.on_user_followed)

    async def on_user_registered(self, event: UserRegistered) -> None:
        await self._enqueue(
            welcome_job_id(event.user_id),
            {
                "to": event.email,
                "subject": f"Welcome to {self._app_name}, {event.username}!",
                "template": templates.WELCOME,
                "variables": {
                    "username": event.username,
                    "loginUrl": f"{self._app_url}/login",
                },
            },
        )

    async def on_user_followed(self, event: UserFollowed) -> None:
        await self._enqueue(
            follow_job_id(event.follower_id, event.following_id),
            {
                "to": event.following_email,
                "subject": f"{event.follower_username} is now following you",
                "template": templates.NEW_FOLLOWER,
                "variables": {
                    "followerName": event.follower_username,
                    "authorName": event.following_username,
                    "profileUrl": f"{self._app_url}/profiles/{event.follower_username}",
                },
            },
        )

    async def _enqueue(self, job_id: str, payload: dict) -> None:
        try:
            created = await self._queue.enqueue(job_id, SEND_EMAIL_JOB, payload)
        except Exception:
            logger.exception("Failed to enqueue notification job %s", job_id)
            return
        if created:
            logger.info("Queued notification job %s", job_id)
        else:
            logger.debug("Notification job %s already queued, skipping", job_id)
