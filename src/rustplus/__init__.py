"""Rust+ - Client for the Rust companion websocket API.

Talks to a Rust game server's companion endpoint, either directly
(ws://host:app.port) or relayed through Facepunch's proxy.

Core pieces:
- RustPlusClient: connection lifecycle, request dispatch and
  response correlation
- EventEmitter: lifecycle notifications and unsolicited broadcasts
- Transports: websocket (production) and mock (testing)
"""

from .client import ConnectionState, RustPlusClient, create_client
from .config import DEFAULT_PROXY_HOST, ClientConfig, Identity
from .errors import (
    AppResponseError,
    CodecError,
    ConnectionClosedError,
    DuplicateSequenceError,
    NotConnectedError,
    RequestSendError,
    RequestTimeoutError,
    RustPlusError,
    SequenceExhaustedError,
    TooManyPendingRequestsError,
)
from .events import ClientEvent, ClientEventType, EventEmitter
from .protocol import AppMessage, AppRequest, AppResponse, RequestKind, RequestPayload
from .registry import CorrelationRegistry, SequenceAllocator
from .transport import (
    BaseTransport,
    MockTransport,
    MockTransportFactory,
    TransportListener,
    TransportState,
    WebSocketTransport,
    create_mock_transport_factory,
    create_websocket_transport,
)

__version__ = "0.1.0"

__all__ = [
    # Client
    "RustPlusClient",
    "ConnectionState",
    "create_client",
    # Configuration
    "ClientConfig",
    "Identity",
    "DEFAULT_PROXY_HOST",
    # Events
    "ClientEvent",
    "ClientEventType",
    "EventEmitter",
    # Protocol
    "AppMessage",
    "AppRequest",
    "AppResponse",
    "RequestKind",
    "RequestPayload",
    # Correlation
    "CorrelationRegistry",
    "SequenceAllocator",
    # Transports
    "BaseTransport",
    "TransportListener",
    "TransportState",
    "WebSocketTransport",
    "MockTransport",
    "MockTransportFactory",
    "create_websocket_transport",
    "create_mock_transport_factory",
    # Errors
    "RustPlusError",
    "NotConnectedError",
    "ConnectionClosedError",
    "RequestSendError",
    "RequestTimeoutError",
    "AppResponseError",
    "CodecError",
    "SequenceExhaustedError",
    "DuplicateSequenceError",
    "TooManyPendingRequestsError",
]
