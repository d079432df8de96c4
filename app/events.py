"""
In-process domain event bus.

Handlers are awaited in subscription order.  A failing handler is logged and
skipped so that side effects (e.g. notification enqueueing) can never fail
the operation that published the event.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserRegistered:
    user_id: int
    email: str
    username: str


@dataclass(frozen=True)
class UserFollowed:
    follower_id: int
    follower_username: str
    following_id: int
    following_username: str
    following_email: str


Handler = Callable[[object], Awaitable[None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    async def publish(self, event: object) -> None:
        for handler in self._handlers.get(type(event), []):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Event handler %s failed for %s",
                    getattr(handler, "__qualname__", repr(handler)),
                    type(event).__name__,
                )
