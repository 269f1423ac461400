"""Sequence allocation and response correlation.

SequenceAllocator hands out request sequence numbers. The
CorrelationRegistry maps an in-flight sequence number to the callback
waiting for its response and guarantees each callback runs at most
once.

Entries are removed when their response arrives or when the
connection closes. There is no time-based expiry: a request whose
response never arrives keeps its entry until the connection closes.
`max_pending` bounds how many such entries can accumulate.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import DuplicateSequenceError, SequenceExhaustedError, TooManyPendingRequestsError
from .protocol.messages import AppMessage

logger = logging.getLogger(__name__)

# AppRequest.seq is a uint32 on the wire.
MAX_SEQUENCE = 2**32 - 1

# A truthy return value suppresses the generic "message" notification.
ResponseCallback = Callable[[AppMessage], "bool | None | Awaitable[bool | None]"]
AbandonCallback = Callable[[BaseException], None]


class SequenceAllocator:
    """Monotonic request sequence numbers.

    Starts at 0 and pre-increments, so the first request carries 1.
    0 is never handed out.
    """

    def __init__(self, start: int = 0, limit: int = MAX_SEQUENCE):
        self._current = start
        self._limit = limit

    @property
    def current(self) -> int:
        """The last sequence number handed out (0 if none)."""
        return self._current

    def next(self) -> int:
        if self._current >= self._limit:
            raise SequenceExhaustedError(
                f"Sequence counter exhausted at {self._current}; create a new client"
            )
        self._current += 1
        return self._current


@dataclass
class PendingEntry:
    """A request waiting for its response.

    `inline` entries only settle a future and never wait on anything,
    so the client runs them straight from the socket reader. All other
    callbacks are user code and run on the client's delivery queue.
    """

    seq: int
    callback: ResponseCallback
    on_abandon: AbandonCallback | None = None
    inline: bool = False
    created_at: float = field(default_factory=time.monotonic)

    async def invoke(self, message: AppMessage) -> bool:
        """Run the callback; True if it asked to suppress the message event."""
        result: Any = self.callback(message)
        if inspect.isawaitable(result):
            result = await result
        return bool(result)


class CorrelationRegistry:
    """In-flight sequence number -> pending callback."""

    def __init__(self, max_pending: int = 1024):
        self._entries: dict[int, PendingEntry] = {}
        self._max_pending = max_pending

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, seq: object) -> bool:
        return seq in self._entries

    @property
    def max_pending(self) -> int:
        return self._max_pending

    def pending(self) -> list[int]:
        """Sequence numbers currently awaiting a response, oldest first."""
        return list(self._entries)

    def register(
        self,
        seq: int,
        callback: ResponseCallback,
        on_abandon: AbandonCallback | None = None,
        *,
        inline: bool = False,
    ) -> PendingEntry:
        """Store a callback for a sequence number.

        Raises:
            DuplicateSequenceError: seq is already registered
            TooManyPendingRequestsError: the registry is full
        """
        if seq in self._entries:
            raise DuplicateSequenceError(f"Sequence {seq} is already pending")
        if len(self._entries) >= self._max_pending:
            raise TooManyPendingRequestsError(self._max_pending)

        entry = PendingEntry(seq=seq, callback=callback, on_abandon=on_abandon, inline=inline)
        self._entries[seq] = entry
        return entry

    def discard(self, seq: int) -> bool:
        """Drop an entry without invoking it. Returns True if one existed."""
        return self._entries.pop(seq, None) is not None

    def take(self, seq: int) -> PendingEntry | None:
        """Remove and return the entry for seq, if any.

        Once taken, an entry can no longer be matched or abandoned, so
        a duplicate frame for the same seq finds nothing.
        """
        if seq == 0:
            return None
        return self._entries.pop(seq, None)

    async def resolve(self, seq: int, message: AppMessage) -> bool:
        """Deliver a response to the callback registered for seq.

        The entry is removed before the callback runs, so a callback
        that sends another request (or a duplicate frame) never sees it
        again. Returns True if the callback asked to suppress the
        generic message notification, False otherwise or if nothing was
        registered for seq.
        """
        entry = self.take(seq)
        if entry is None:
            return False
        return await entry.invoke(message)

    def abandon_all(self, exc: BaseException) -> int:
        """Remove every entry, notifying those that asked to be told.

        Returns the number of entries removed.
        """
        entries = list(self._entries.values())
        self._entries.clear()

        for entry in entries:
            if entry.on_abandon is None:
                continue
            try:
                entry.on_abandon(exc)
            except Exception:
                logger.exception(f"Error abandoning pending request seq={entry.seq}")

        if entries:
            logger.warning(f"Abandoned {len(entries)} pending request(s): {exc}")
        return len(entries)
