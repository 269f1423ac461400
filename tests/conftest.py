"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from rustplus.client import RustPlusClient
from rustplus.config import ClientConfig
from rustplus.events import ClientEvent
from rustplus.protocol.messages import AppMessage
from rustplus.transport import MockTransportFactory


@pytest.fixture
def config() -> ClientConfig:
    """Direct-mode config with a short request timeout."""
    return ClientConfig(
        server="127.0.0.1",
        port=28082,
        player_id=76561198000000001,
        player_token=123456789,
        request_timeout=1.0,
    )


@pytest.fixture
def factory() -> MockTransportFactory:
    return MockTransportFactory()


@pytest.fixture
def client(config: ClientConfig, factory: MockTransportFactory) -> RustPlusClient:
    """Client wired to in-memory transports (not yet connected)."""
    return RustPlusClient(config, transport_factory=factory)


@pytest.fixture
def recorded(client: RustPlusClient) -> list[ClientEvent]:
    """Every event the client emits, in order."""
    events: list[ClientEvent] = []
    client.events.on_any(events.append)
    return events


@pytest.fixture
def auto_respond(factory: MockTransportFactory) -> Callable[..., Callable[[], None]]:
    """Answer every sent request with a response carrying the given payload.

    Must be installed after connect(). Replies arrive on their own task,
    the way a server's would, so they also reach requests sent from
    listeners and callbacks.

    Usage:
        auto_respond(time=AppTime(time=12.5))
        auto_respond(error=AppError(error="not_found"))
    """

    def install(**payload: Any) -> Callable[[], None]:
        transport = factory.last
        transport.responder = lambda request: AppMessage.for_response(request.seq, **payload)

        def stop() -> None:
            transport.responder = None

        return stop

    return install
