"""Transport abstraction for the Rust+ client.

A transport owns one duplex byte-stream connection and reports what
happens to it through four signals: open, message, error, close. The
client never touches the socket directly; it only reacts to signals
and calls send().

Architecture:
- BaseTransport implements the signal sequencing (one background
  reader task, each signal awaited before the next frame is read, so
  a listener must hand slow work off rather than await it)
- WebSocketTransport is the production implementation (websockets)
- MockTransport is an in-memory implementation for tests

Signal rules:
- open() reports failures as error followed by close; it never raises
  for connection problems
- error never changes state by itself; close is authoritative
- after close, or after terminate(), no further signals are delivered
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import websockets

from .config import ClientConfig
from .protocol.codec import Codec, JsonCodec
from .protocol.messages import AppMessage
from .protocol.requests import AppRequest

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    """Transport lifecycle."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class TransportListener:
    """The four signals a transport delivers, in arrival order."""

    on_open: Callable[[], Awaitable[None]]
    on_message: Callable[[bytes], Awaitable[None]]
    on_error: Callable[[BaseException], Awaitable[None]]
    on_close: Callable[[], Awaitable[None]]


class BaseTransport(ABC):
    """Base class for transports with common signal handling.

    Provides:
    - State management
    - Background reader task management
    - Detach-on-terminate so a torn-down transport goes silent
    """

    def __init__(self, address: str, listener: TransportListener, config: ClientConfig):
        self.address = address
        self.config = config
        self._listener: TransportListener | None = listener
        self._state = TransportState.IDLE
        self._reader_task: asyncio.Task[None] | None = None
        self._terminated = False

    @property
    def state(self) -> TransportState:
        """Current transport state."""
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == TransportState.OPEN

    async def open(self) -> None:
        """Open the connection and start delivering signals."""
        if self._state != TransportState.IDLE:
            raise RuntimeError(f"Transport already used (state={self._state.value})")

        self._state = TransportState.CONNECTING
        try:
            await self._do_open()
        except Exception as e:
            logger.warning(f"Failed to open {self.address}: {e}")
            await self._signal_error(e)
            await self._signal_close()
            return

        if self._terminated:
            # Torn down while the handshake was in flight
            await self._close_quietly()
            return

        self._state = TransportState.OPEN
        logger.info(f"{self.__class__.__name__} connected to {self.address}")
        if self._listener is not None:
            await self._listener.on_open()

        if not self._terminated and self._state == TransportState.OPEN:
            self._reader_task = asyncio.create_task(self._read_loop())

    async def send(self, data: bytes) -> None:
        """Write one frame.

        Raises:
            ConnectionError: If the transport is not open
        """
        if self._state != TransportState.OPEN:
            raise ConnectionError(f"Transport not open (state={self._state.value})")
        await self._do_send(data)

    async def terminate(self) -> None:
        """Forcibly close the connection without delivering further signals."""
        if self._terminated:
            return
        self._terminated = True
        self._listener = None
        self._state = TransportState.CLOSED

        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._close_quietly()
        logger.info(f"{self.__class__.__name__} terminated ({self.address})")

    async def _read_loop(self) -> None:
        """Background task delivering frames one at a time."""
        try:
            async for frame in self._receive_frames():
                listener = self._listener
                if listener is None:
                    break
                await listener.on_message(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._terminated:
                logger.error(f"Read loop error on {self.address}: {e}")
                await self._signal_error(e)
        finally:
            await self._signal_close()

    async def _signal_error(self, error: BaseException) -> None:
        if self._listener is not None:
            await self._listener.on_error(error)

    async def _signal_close(self) -> None:
        """Deliver close once; the listener is detached afterwards."""
        self._state = TransportState.CLOSED
        listener, self._listener = self._listener, None
        if listener is not None:
            await listener.on_close()

    async def _close_quietly(self) -> None:
        try:
            await self._do_close()
        except Exception as e:
            logger.debug(f"Error while closing {self.address}: {e}")

    # Abstract methods for subclasses
    @abstractmethod
    async def _do_open(self) -> None:
        """Implementation-specific connection logic."""
        ...

    @abstractmethod
    async def _do_send(self, data: bytes) -> None:
        """Implementation-specific send logic."""
        ...

    @abstractmethod
    async def _do_close(self) -> None:
        """Implementation-specific teardown logic."""
        ...

    @abstractmethod
    def _receive_frames(self) -> AsyncIterator[bytes]:
        """Implementation-specific receive logic. Must be an async generator
        that ends when the remote side closes."""
        ...


# Builds a transport for an address; injected into the client.
TransportFactory = Callable[[str, TransportListener, ClientConfig], BaseTransport]


class WebSocketTransport(BaseTransport):
    """Transport over a websocket (ws:// direct or wss:// via proxy).

    Wire format:
    - Outbound: one binary frame per encoded AppRequest
    - Inbound: one frame per AppMessage (text frames are re-encoded
      to bytes before decoding)
    """

    def __init__(self, address: str, listener: TransportListener, config: ClientConfig):
        super().__init__(address, listener, config)
        self._ws: Any = None  # websockets ClientConnection
        self._send_lock = asyncio.Lock()

    async def _do_open(self) -> None:
        """Connect to the websocket server."""
        self._ws = await websockets.connect(
            self.address,
            open_timeout=self.config.open_timeout,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
            close_timeout=self.config.close_timeout,
            max_size=self.config.max_frame_size,
        )

    async def _do_send(self, data: bytes) -> None:
        """Send one binary frame."""
        if not self._ws:
            raise ConnectionError("WebSocket not connected")
        async with self._send_lock:
            await self._ws.send(data)

    async def _do_close(self) -> None:
        """Close the websocket."""
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()

    async def _receive_frames(self) -> AsyncIterator[bytes]:
        """Read frames until the server closes the connection.

        A clean close ends the iteration; an abnormal close raises
        and is reported as an error before the close signal.
        """
        if not self._ws:
            raise ConnectionError("WebSocket not connected")

        async for data in self._ws:
            if isinstance(data, str):
                data = data.encode("utf-8")
            logger.debug(f"Received frame ({len(data)} bytes)")
            yield data


# Maps a request the mock received to the reply it should deliver, if any.
Responder = Callable[[AppRequest], "AppMessage | None"]


class MockTransport(BaseTransport):
    """Mock transport for testing.

    Records outbound frames and lets tests inject inbound frames and
    lifecycle signals. No actual I/O - everything is in-memory.

    Usage:
        factory = MockTransportFactory()
        client = RustPlusClient(config, transport_factory=factory)
        await client.connect()

        transport = factory.last
        await transport.deliver_message(AppMessage.for_response(1, success=AppSuccess()))
        assert transport.sent_requests()[0].seq == 1

        # Answer every request as a server would, after the send returns
        transport.responder = lambda r: AppMessage.for_response(r.seq, success=AppSuccess())
    """

    def __init__(
        self,
        address: str,
        listener: TransportListener,
        config: ClientConfig,
        *,
        fail_open: BaseException | None = None,
        codec: Codec | None = None,
    ):
        super().__init__(address, listener, config)
        self.fail_open = fail_open
        self.fail_send: BaseException | None = None
        self.codec = codec or JsonCodec()
        self._sent: list[bytes] = []
        self._remote_closed = asyncio.Event()
        self.closed_by_client = False
        self.responder: Responder | None = None
        self._replies: set[asyncio.Task[None]] = set()

    @property
    def sent(self) -> list[bytes]:
        """All frames written through this transport."""
        return self._sent.copy()

    def sent_requests(self) -> list[AppRequest]:
        """Decoded view of the frames written so far."""
        return [self.codec.decode_request(frame) for frame in self._sent]

    async def deliver(self, data: bytes) -> None:
        """Inject an inbound frame as if the server had sent it."""
        listener = self._listener
        if listener is not None and self._state == TransportState.OPEN:
            await listener.on_message(data)

    async def deliver_message(self, message: AppMessage) -> None:
        """Encode and inject an inbound message."""
        await self.deliver(self.codec.encode_message(message))

    async def simulate_error(self, error: BaseException) -> None:
        """Raise a transport error signal."""
        await self._signal_error(error)

    async def simulate_close(self) -> None:
        """Close from the server side."""
        await self._signal_close()
        self._remote_closed.set()

    async def _do_open(self) -> None:
        if self.fail_open is not None:
            raise self.fail_open

    async def _do_send(self, data: bytes) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self._sent.append(data)
        if self.responder is not None:
            reply = self.responder(self.codec.decode_request(data))
            if reply is not None:
                task = asyncio.create_task(self.deliver_message(reply))
                self._replies.add(task)
                task.add_done_callback(self._replies.discard)

    async def _do_close(self) -> None:
        self.closed_by_client = True
        self._remote_closed.set()

    async def _receive_frames(self) -> AsyncIterator[bytes]:
        # Frames are injected through deliver(); just wait for close.
        await self._remote_closed.wait()
        return
        yield  # Make this a generator


class MockTransportFactory:
    """Creates MockTransports and remembers them for assertions."""

    def __init__(self, fail_open: BaseException | None = None, codec: Codec | None = None):
        self.fail_open = fail_open
        self.codec = codec
        self.created: list[MockTransport] = []

    def __call__(
        self, address: str, listener: TransportListener, config: ClientConfig
    ) -> MockTransport:
        transport = MockTransport(
            address, listener, config, fail_open=self.fail_open, codec=self.codec
        )
        self.created.append(transport)
        return transport

    @property
    def last(self) -> MockTransport:
        """The most recently created transport."""
        if not self.created:
            raise LookupError("No transport created yet")
        return self.created[-1]


# Factory functions


def create_websocket_transport(
    address: str, listener: TransportListener, config: ClientConfig
) -> WebSocketTransport:
    """Create the production websocket transport.

    This is the default TransportFactory used by RustPlusClient.
    """
    return WebSocketTransport(address, listener, config)


def create_mock_transport_factory(
    fail_open: BaseException | None = None,
) -> MockTransportFactory:
    """Create a mock transport factory for testing."""
    return MockTransportFactory(fail_open=fail_open)
