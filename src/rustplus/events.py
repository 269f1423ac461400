"""Client notifications.

Every lifecycle change and every frame that is not consumed by a
request callback is published as a ClientEvent through the client's
EventEmitter. Listeners run in registration order and one event is
fully delivered before the next is emitted.

The client never emits from its socket reader. Events are submitted
to a DeliveryQueue, which runs them on a separate task in the order
they were produced.

Usage:
    client.events.on(ClientEventType.MESSAGE, on_message)
    client.events.on_any(log_everything)

    async for event in client.events.stream(ClientEventType.MESSAGE):
        ...
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from .protocol.messages import AppMessage
from .protocol.requests import AppRequest

logger = logging.getLogger(__name__)


class ClientEventType(str, Enum):
    """All notifications a client emits."""

    CONNECTING = "connecting"  # Connection attempt is starting
    CONNECTED = "connected"  # Transport reported open
    DISCONNECTED = "disconnected"  # Transport closed or was torn down
    ERROR = "error"  # Transport, decode, send or callback failure
    REQUEST = "request"  # A request was written to the transport
    MESSAGE = "message"  # A frame not consumed by a request callback


@dataclass(frozen=True)
class ClientEvent:
    """A single notification.

    Only the field matching the type is set:
    - ERROR carries `error`
    - REQUEST carries `request`
    - MESSAGE carries `message`
    """

    type: ClientEventType
    error: BaseException | None = None
    request: AppRequest | None = None
    message: AppMessage | None = None

    @classmethod
    def connecting(cls) -> ClientEvent:
        return cls(type=ClientEventType.CONNECTING)

    @classmethod
    def connected(cls) -> ClientEvent:
        return cls(type=ClientEventType.CONNECTED)

    @classmethod
    def disconnected(cls) -> ClientEvent:
        return cls(type=ClientEventType.DISCONNECTED)

    @classmethod
    def failure(cls, error: BaseException) -> ClientEvent:
        return cls(type=ClientEventType.ERROR, error=error)

    @classmethod
    def sent(cls, request: AppRequest) -> ClientEvent:
        return cls(type=ClientEventType.REQUEST, request=request)

    @classmethod
    def received(cls, message: AppMessage) -> ClientEvent:
        return cls(type=ClientEventType.MESSAGE, message=message)


# Listeners may be plain functions or coroutines.
EventCallback = Callable[[ClientEvent], "Awaitable[None] | None"]

_ANY = "*"


class EventEmitter:
    """Ordered publish/subscribe for ClientEvents.

    A listener that raises is logged and skipped; it never stops
    delivery to the remaining listeners or breaks the caller.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[EventCallback]] = {}

    def on(self, event_type: ClientEventType | str, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to one event type.

        Returns:
            Unsubscribe function
        """
        return self._subscribe(ClientEventType(event_type).value, callback)

    def on_any(self, callback: EventCallback) -> Callable[[], None]:
        """Subscribe to every event type.

        Returns:
            Unsubscribe function
        """
        return self._subscribe(_ANY, callback)

    def listener_count(self, event_type: ClientEventType | str | None = None) -> int:
        key = _ANY if event_type is None else ClientEventType(event_type).value
        return len(self._subscriptions.get(key, []))

    async def emit(self, event: ClientEvent) -> None:
        """Deliver an event to its specific listeners, then wildcard listeners."""
        # Copy so listeners may (un)subscribe while we iterate
        specific_subs = list(self._subscriptions.get(event.type.value, []))
        wildcard_subs = list(self._subscriptions.get(_ANY, []))

        for callback in specific_subs + wildcard_subs:
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Error in listener for {event.type.value}")

    async def stream(self, *event_types: ClientEventType) -> AsyncIterator[ClientEvent]:
        """Yield events as they are emitted.

        With no arguments every event is yielded; otherwise only the
        given types.
        """
        wanted = {ClientEventType(t) for t in event_types}
        queue: asyncio.Queue[ClientEvent] = asyncio.Queue()

        def on_event(event: ClientEvent) -> None:
            if not wanted or event.type in wanted:
                queue.put_nowait(event)

        unsubscribe = self.on_any(on_event)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    def clear(self) -> None:
        """Remove every listener."""
        self._subscriptions = {}

    def _subscribe(self, key: str, callback: EventCallback) -> Callable[[], None]:
        self._subscriptions.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            if key in self._subscriptions and callback in self._subscriptions[key]:
                self._subscriptions[key].remove(callback)

        return unsubscribe


Job = Callable[[], Awaitable[None]]


class DeliveryQueue:
    """Runs submitted jobs one at a time, in submission order.

    Jobs run on a background task that is started when work arrives and
    exits once the queue is empty. Whoever submits a job never waits for
    it, so a listener may await something that only the submitter can
    produce (a response read off the socket, say) without blocking it.
    """

    def __init__(self) -> None:
        self._jobs: deque[Job] = deque()
        self._task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._jobs)

    def submit(self, job: Job) -> None:
        self._jobs.append(job)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    @property
    def is_delivering(self) -> bool:
        """True when called from inside a running job."""
        return self._task is not None and self._task is asyncio.current_task()

    async def drain(self) -> None:
        """Wait until every job submitted so far has finished.

        Returns immediately when called from inside a job, which would
        otherwise wait on itself.
        """
        if self.is_delivering:
            return
        reached: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        async def mark() -> None:
            if not reached.done():
                reached.set_result(None)

        self.submit(mark)
        await reached

    async def _run(self) -> None:
        while self._jobs:
            job = self._jobs.popleft()
            try:
                await job()
            except Exception:
                logger.exception("Error in queued delivery")
