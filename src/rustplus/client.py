"""Rust+ companion client.

RustPlusClient owns one connection to a Rust server's companion
websocket and everything tied to it: the connection state, the request
sequence counter, the table of requests waiting for a response, and
the notification emitter.

Usage:
    config = ClientConfig(server="1.2.3.4", port=28082, player_id=..., player_token=...)
    async with RustPlusClient(config) as client:
        info = await client.get_info()

    # The default codec is JSON; a real server needs a protobuf Codec
    client = RustPlusClient(config, codec=my_protobuf_codec)

    # Callback style
    seq = await client.send_request({"getTime": {}}, on_time)

    # Unsolicited broadcasts (team chat, entity changes, ...)
    client.events.on(ClientEventType.MESSAGE, on_message)

    # Testing
    factory = MockTransportFactory()
    client = RustPlusClient(config, transport_factory=factory)
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from .config import ClientConfig, Identity
from .errors import (
    AppResponseError,
    CodecError,
    ConnectionClosedError,
    NotConnectedError,
    RequestSendError,
    RequestTimeoutError,
)
from .events import ClientEvent, DeliveryQueue, EventEmitter
from .protocol.codec import Codec, create_default_codec
from .protocol.messages import (
    AppCameraInfo,
    AppEntityInfo,
    AppInfo,
    AppMap,
    AppMapMarkers,
    AppMessage,
    AppNexusAuth,
    AppResponse,
    AppTeamChat,
    AppTeamInfo,
    AppTime,
)
from .protocol.requests import AppRequest, RequestPayload
from .registry import (
    AbandonCallback,
    CorrelationRegistry,
    PendingEntry,
    ResponseCallback,
    SequenceAllocator,
)
from .transport import BaseTransport, TransportFactory, TransportListener, create_websocket_transport

logger = logging.getLogger(__name__)

PayloadLike = RequestPayload | Mapping[str, Any]


class ConnectionState(str, Enum):
    """Client connection lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class RustPlusClient:
    """Client for the Rust+ companion protocol.

    Connection failures never raise from connect(); they surface as an
    `error` notification followed by `disconnected`. Requests issued
    without a connection raise NotConnectedError.

    When the connection closes, every request still waiting for a
    response is abandoned: awaitables from send_request_async fail with
    ConnectionClosedError, plain callbacks are dropped uninvoked.

    Listeners and response callbacks never run on the socket reader.
    The reader settles send_request_async awaitables directly and hands
    everything else to a delivery queue that runs it in arrival order,
    so a listener or callback may itself await send_request_async.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        codec: Codec | None = None,
        transport_factory: TransportFactory | None = None,
    ):
        self.config = config
        self._identity = config.identity()
        self._codec = codec
        self._transport_factory = transport_factory or create_websocket_transport
        self._transport: BaseTransport | None = None
        self._state = ConnectionState.DISCONNECTED
        self._sequence = SequenceAllocator()
        self._registry = CorrelationRegistry(max_pending=config.max_pending_requests)
        self._events = EventEmitter()
        self._delivery = DeliveryQueue()

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def events(self) -> EventEmitter:
        """Notification channel for lifecycle changes and unsolicited messages."""
        return self._events

    @property
    def registry(self) -> CorrelationRegistry:
        """Requests currently waiting for a response."""
        return self._registry

    @property
    def sequence(self) -> SequenceAllocator:
        return self._sequence

    @property
    def transport(self) -> BaseTransport | None:
        """The current connection handle, if any."""
        return self._transport

    @property
    def is_connected(self) -> bool:
        """Check if a connection handle exists and is open."""
        transport = self._transport
        return transport is not None and transport.is_open

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """Open a connection, tearing down any existing one first.

        `connecting` listeners run before the open attempt begins. Returns
        once the attempt has settled and its notifications (connected, or
        error then disconnected) have been delivered. Called from a
        listener, it queues those notifications instead of waiting.
        """
        if self._transport is not None:
            await self.disconnect()

        if self._codec is None:
            self._codec = create_default_codec()

        address = self._identity.address(self.config.proxy_host)
        listener = TransportListener(
            on_open=self._on_open,
            on_message=self._route_frame,
            on_error=self._on_error,
            on_close=self._on_close,
        )
        transport = self._transport_factory(address, listener, self.config)
        self._transport = transport
        self._state = ConnectionState.CONNECTING

        logger.info(f"Connecting to {address}")
        self._notify(ClientEvent.connecting())
        await self._delivery.drain()
        if self._transport is not transport:
            # A connecting listener tore this attempt down
            return
        await transport.open()
        await self._delivery.drain()

    async def disconnect(self) -> None:
        """Tear down the connection. Safe to call when not connected."""
        transport, self._transport = self._transport, None
        if transport is None:
            return

        await transport.terminate()
        self._state = ConnectionState.DISCONNECTED
        self._registry.abandon_all(ConnectionClosedError("Client disconnected"))
        logger.info(f"Disconnected from {transport.address}")
        self._notify(ClientEvent.disconnected())
        await self._delivery.drain()

    async def drain(self) -> None:
        """Wait until every notification and callback queued so far has run.

        A no-op when called from a listener or response callback.
        """
        await self._delivery.drain()

    async def __aenter__(self) -> RustPlusClient:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    async def _on_open(self) -> None:
        self._state = ConnectionState.CONNECTED
        logger.info(f"Connected to {self._identity.address(self.config.proxy_host)}")
        self._notify(ClientEvent.connected())

    async def _on_error(self, error: BaseException) -> None:
        # Close follows if the connection is gone; state changes there.
        self._notify(ClientEvent.failure(error))

    async def _on_close(self) -> None:
        self._transport = None
        self._state = ConnectionState.DISCONNECTED
        self._registry.abandon_all(ConnectionClosedError())
        logger.info("Connection closed")
        self._notify(ClientEvent.disconnected())

    def _notify(self, event: ClientEvent) -> None:
        self._delivery.submit(functools.partial(self._events.emit, event))

    # =========================================================================
    # Requests
    # =========================================================================

    async def send_request(
        self,
        payload: PayloadLike,
        callback: ResponseCallback | None = None,
    ) -> int:
        """Send a request, optionally registering a callback for its response.

        The callback receives the full AppMessage. If it returns a truthy
        value the response is not re-published as a `message` event. It
        runs on the delivery queue, so it may await further requests.

        Args:
            payload: RequestPayload or mapping with exactly one request kind,
                e.g. {"getTime": {}} or {"entityId": 5, "setEntityValue": {"value": True}}
            callback: Called once with the matching response

        Returns:
            The sequence number the request was sent with

        Raises:
            NotConnectedError: No connection
            RequestSendError: The transport failed to write the frame
            pydantic.ValidationError: The payload is not a valid request
        """
        return await self._dispatch(payload, callback)

    async def _dispatch(
        self,
        payload: PayloadLike,
        callback: ResponseCallback | None = None,
        on_abandon: AbandonCallback | None = None,
        *,
        inline: bool = False,
    ) -> int:
        transport, codec = self._transport, self._codec
        if transport is None or codec is None:
            raise NotConnectedError()

        request_payload = RequestPayload.coerce(payload)
        seq = self._sequence.next()
        if callback is not None:
            self._registry.register(seq, callback, on_abandon, inline=inline)

        request = AppRequest.envelope(
            seq, self._identity.player_id, self._identity.player_token, request_payload
        )
        try:
            data = codec.encode_request(request)
            await transport.send(data)
        except Exception as e:
            self._registry.discard(seq)
            error = RequestSendError(seq, e)
            logger.warning(str(error))
            self._notify(ClientEvent.failure(error))
            raise error from e

        logger.debug(f"Sent {request_payload.kind.value} seq={seq} ({len(data)} bytes)")
        self._notify(ClientEvent.sent(codec.decode_request(data)))
        return seq

    async def send_request_async(
        self,
        payload: PayloadLike,
        timeout: float | None = None,
    ) -> AppResponse:
        """Send a request and wait for its response.

        The response is also published as a `message` event, like any
        response whose callback does not consume it.

        Args:
            payload: See send_request
            timeout: Seconds to wait; defaults to config.request_timeout

        Raises:
            AppResponseError: The server answered with an error
            RequestTimeoutError: No response within timeout
            ConnectionClosedError: The connection closed first
        """
        if timeout is None:
            timeout = self.config.request_timeout

        future: asyncio.Future[AppResponse] = asyncio.get_running_loop().create_future()

        def on_response(message: AppMessage) -> None:
            # Nothing left to settle after a timeout
            if future.done():
                return
            response = message.response
            if response is None:
                return
            if response.error is not None:
                future.set_exception(AppResponseError(response.seq, response.error))
            else:
                future.set_result(response)

        def on_abandon(exc: BaseException) -> None:
            if not future.done():
                future.set_exception(exc)

        seq = await self._dispatch(payload, on_response, on_abandon, inline=True)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            future.cancel()
            logger.warning(f"No response to seq={seq} within {timeout}s")
            raise RequestTimeoutError(seq, timeout) from None

    async def _route_frame(self, data: bytes) -> None:
        """Handle one inbound frame from the transport.

        Runs on the socket reader, so nothing here may wait on user code.
        """
        codec = self._codec
        if codec is None:
            return

        try:
            message = codec.decode_message(data)
        except CodecError as e:
            logger.warning(f"Dropping undecodable frame ({len(data)} bytes): {e}")
            self._notify(ClientEvent.failure(e))
            return

        logger.debug(f"Received frame seq={message.seq}")
        entry = self._registry.take(message.seq) if message.is_correlated() else None
        if entry is not None and entry.inline:
            try:
                handled = await entry.invoke(message)
            except Exception as e:
                logger.exception(f"Response callback for seq={entry.seq} failed")
                self._notify(ClientEvent.failure(e))
                return
            if handled:
                return
            entry = None

        self._delivery.submit(functools.partial(self._deliver, message, entry))

    async def _deliver(self, message: AppMessage, entry: PendingEntry | None) -> None:
        if entry is not None:
            try:
                handled = await entry.invoke(message)
            except Exception as e:
                logger.exception(f"Response callback for seq={entry.seq} failed")
                await self._events.emit(ClientEvent.failure(e))
                return
            if handled:
                return
        await self._events.emit(ClientEvent.received(message))

    # =========================================================================
    # Server
    # =========================================================================

    async def get_info(self, timeout: float | None = None) -> AppInfo | None:
        """Server name, map, population and wipe time."""
        response = await self.send_request_async(RequestPayload.get_info_request(), timeout)
        return response.info

    async def get_time(self, timeout: float | None = None) -> AppTime | None:
        response = await self.send_request_async(RequestPayload.get_time_request(), timeout)
        return response.time

    async def get_map(self, timeout: float | None = None) -> AppMap | None:
        """Map image (base64 JPEG) and monument positions."""
        response = await self.send_request_async(RequestPayload.get_map_request(), timeout)
        return response.map

    async def get_map_markers(self, timeout: float | None = None) -> AppMapMarkers | None:
        response = await self.send_request_async(
            RequestPayload.get_map_markers_request(), timeout
        )
        return response.map_markers

    # =========================================================================
    # Team
    # =========================================================================

    async def get_team_info(self, timeout: float | None = None) -> AppTeamInfo | None:
        response = await self.send_request_async(RequestPayload.get_team_info_request(), timeout)
        return response.team_info

    async def get_team_chat(self, timeout: float | None = None) -> AppTeamChat | None:
        response = await self.send_request_async(RequestPayload.get_team_chat_request(), timeout)
        return response.team_chat

    async def send_team_message(self, message: str, timeout: float | None = None) -> AppResponse:
        return await self.send_request_async(
            RequestPayload.send_team_message_request(message), timeout
        )

    async def promote_to_leader(self, steam_id: int, timeout: float | None = None) -> AppResponse:
        return await self.send_request_async(
            RequestPayload.promote_to_leader_request(steam_id), timeout
        )

    # =========================================================================
    # Entities
    # =========================================================================

    async def get_entity_info(
        self, entity_id: int, timeout: float | None = None
    ) -> AppEntityInfo | None:
        """State of a paired smart device (switch, alarm, storage monitor)."""
        response = await self.send_request_async(
            RequestPayload.get_entity_info_request(entity_id), timeout
        )
        return response.entity_info

    async def set_entity_value(
        self, entity_id: int, value: bool, timeout: float | None = None
    ) -> AppResponse:
        return await self.send_request_async(
            RequestPayload.set_entity_value_request(entity_id, value), timeout
        )

    async def turn_smart_switch_on(
        self, entity_id: int, timeout: float | None = None
    ) -> AppResponse:
        return await self.set_entity_value(entity_id, True, timeout)

    async def turn_smart_switch_off(
        self, entity_id: int, timeout: float | None = None
    ) -> AppResponse:
        return await self.set_entity_value(entity_id, False, timeout)

    async def strobe(
        self,
        entity_id: int,
        duration: float = 0.1,
        value: bool = True,
        timeout: float | None = None,
    ) -> AppResponse:
        """Flip a smart switch to `value`, wait `duration` seconds, flip it back.

        The server rate limits entity changes, so repeating this quickly
        will start failing with AppResponseError.
        """
        await self.set_entity_value(entity_id, value, timeout)
        await asyncio.sleep(duration)
        return await self.set_entity_value(entity_id, not value, timeout)

    async def check_subscription(self, entity_id: int, timeout: float | None = None) -> bool:
        """Whether entity change broadcasts are enabled for an alarm."""
        response = await self.send_request_async(
            RequestPayload.check_subscription_request(entity_id), timeout
        )
        return response.flag is not None and response.flag.value

    async def set_subscription(
        self, entity_id: int, value: bool, timeout: float | None = None
    ) -> AppResponse:
        return await self.send_request_async(
            RequestPayload.set_subscription_request(entity_id, value), timeout
        )

    # =========================================================================
    # Clan
    # =========================================================================

    async def get_clan_info(self, timeout: float | None = None) -> dict[str, Any] | None:
        response = await self.send_request_async(RequestPayload.get_clan_info_request(), timeout)
        return response.clan_info

    async def get_clan_chat(self, timeout: float | None = None) -> dict[str, Any] | None:
        response = await self.send_request_async(RequestPayload.get_clan_chat_request(), timeout)
        return response.clan_chat

    async def send_clan_message(self, message: str, timeout: float | None = None) -> AppResponse:
        return await self.send_request_async(
            RequestPayload.send_clan_message_request(message), timeout
        )

    async def set_clan_motd(self, message: str, timeout: float | None = None) -> AppResponse:
        return await self.send_request_async(
            RequestPayload.set_clan_motd_request(message), timeout
        )

    async def get_nexus_auth(
        self, app_key: str, timeout: float | None = None
    ) -> AppNexusAuth | None:
        response = await self.send_request_async(
            RequestPayload.get_nexus_auth_request(app_key), timeout
        )
        return response.nexus_auth

    # =========================================================================
    # Cameras
    # =========================================================================

    async def subscribe_to_camera(
        self, camera_id: str, timeout: float | None = None
    ) -> AppCameraInfo | None:
        """Start receiving camera ray broadcasts for a camera identifier."""
        response = await self.send_request_async(
            RequestPayload.camera_subscribe_request(camera_id), timeout
        )
        return response.camera_subscribe_info

    async def unsubscribe_from_camera(self, timeout: float | None = None) -> AppResponse:
        return await self.send_request_async(RequestPayload.camera_unsubscribe_request(), timeout)

    async def send_camera_input(
        self, buttons: int, x: float, y: float, timeout: float | None = None
    ) -> AppResponse:
        """Send pressed buttons and a mouse delta to the subscribed camera."""
        return await self.send_request_async(
            RequestPayload.camera_input_request(buttons, x, y), timeout
        )


def create_client(
    server: str,
    port: int | str,
    player_id: int | str,
    player_token: int | str,
    use_facepunch_proxy: bool = False,
    *,
    codec: Codec | None = None,
    transport_factory: TransportFactory | None = None,
    **config_options: Any,
) -> RustPlusClient:
    """Create a client from pairing details.

    Extra keyword arguments are passed to ClientConfig
    (request_timeout, ping_interval, ...).
    """
    config = ClientConfig(
        server=server,
        port=port,
        player_id=player_id,
        player_token=player_token,
        use_facepunch_proxy=use_facepunch_proxy,
        **config_options,
    )
    return RustPlusClient(config, codec=codec, transport_factory=transport_factory)
