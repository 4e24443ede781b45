"""
In-process domain event bus.

Every subscription owns a bounded asyncio queue drained by its own worker
task, so a slow consumer (email fan-out) never holds up another one (audit
log) and `publish` never waits on any of them.
"""
import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Awaitable, Callable, ClassVar, Dict, List, Optional, Union

from fastapi import Depends, Request

logger = logging.getLogger(__name__)

POST_CREATED = "post:created"
POST_UPDATED = "post:updated"
POST_DELETED = "post:deleted"


@dataclass(frozen=True)
class AuthorRef:
    id: str
    username: str
    full_name: Optional[str] = None


@dataclass(frozen=True)
class PostCreated:
    name: ClassVar[str] = POST_CREATED
    post_id: str
    title: str
    content: str
    category: str
    thumbnail: Optional[str]
    created_at: datetime
    author: AuthorRef


@dataclass(frozen=True)
class PostUpdated:
    name: ClassVar[str] = POST_UPDATED
    post_id: str
    title: str
    author: AuthorRef


@dataclass(frozen=True)
class PostDeleted:
    name: ClassVar[str] = POST_DELETED
    post_id: str
    title: str
    author: AuthorRef


DomainEvent = Union[PostCreated, PostUpdated, PostDeleted]
Handler = Callable[[DomainEvent], Awaitable[None]]


@dataclass
class _Subscription:
    event_name: str
    handler: Handler
    queue: asyncio.Queue
    task: Optional[asyncio.Task] = field(default=None)

    @property
    def label(self) -> str:
        return getattr(self.handler, "__qualname__", None) or type(self.handler).__name__


class EventBus:
    def __init__(self, maxsize: int = 1000):
        self.maxsize = maxsize
        self._subscriptions: Dict[str, List[_Subscription]] = {}
        self._running = False

    def subscribe(self, event_name: str, handler: Handler) -> None:
        sub = _Subscription(event_name, handler, asyncio.Queue(maxsize=self.maxsize))
        self._subscriptions.setdefault(event_name, []).append(sub)
        if self._running:
            self._start_worker(sub)

    def publish(self, event: DomainEvent) -> None:
        """Hand the event to every subscriber of its name without waiting."""
        for sub in self._subscriptions.get(event.name, []):
            try:
                sub.queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Event queue full for {sub.label}; dropping {event.name} ({event.post_id})")

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for sub in self._all():
            self._start_worker(sub)

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        for sub in self._all():
            await sub.queue.join()

    async def stop(self, timeout: float = 10.0) -> None:
        if not self._running:
            return
        try:
            await asyncio.wait_for(self.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Event bus stopped with undelivered events")
        self._running = False
        for sub in self._all():
            if sub.task is not None:
                sub.task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await sub.task
                sub.task = None

    def _all(self) -> List[_Subscription]:
        return [sub for subs in self._subscriptions.values() for sub in subs]

    def _start_worker(self, sub: _Subscription) -> None:
        sub.task = asyncio.create_task(self._run(sub), name=f"events:{sub.event_name}:{sub.label}")

    async def _run(self, sub: _Subscription) -> None:
        while True:
            event = await sub.queue.get()
            try:
                await sub.handler(event)
            except Exception:
                logger.exception(f"Event handler {sub.label} failed for {event.name} ({event.post_id})")
            finally:
                sub.queue.task_done()


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.events

EventBusDep = Annotated[EventBus, Depends(get_event_bus)]
