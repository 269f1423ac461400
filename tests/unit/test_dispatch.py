"""Unit tests for request dispatch (RustPlusClient.send_request)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from rustplus.client import RustPlusClient
from rustplus.config import ClientConfig
from rustplus.errors import NotConnectedError, RequestSendError, TooManyPendingRequestsError
from rustplus.events import ClientEvent, ClientEventType
from rustplus.protocol.codec import Codec, JsonCodec, create_default_codec
from rustplus.protocol.messages import AppMessage, AppSuccess
from rustplus.protocol.requests import AppRequest, RequestKind, RequestPayload
from rustplus.transport import MockTransportFactory


class TestSendRequest:
    """Tests for building and writing requests."""

    @pytest.mark.asyncio
    async def test_first_request_uses_seq_one(
        self,
        client: RustPlusClient,
        factory: MockTransportFactory,
        config: ClientConfig,
    ) -> None:
        await client.connect()
        seq = await client.send_request({"getTime": {}})

        assert seq == 1
        [request] = factory.last.sent_requests()
        assert request.seq == 1
        assert request.player_id == config.player_id
        assert request.player_token == config.player_token
        assert request.kind == RequestKind.GET_TIME

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_sequences_strictly_increase(
        self, client: RustPlusClient, factory: MockTransportFactory
    ) -> None:
        await client.connect()
        seqs = [await client.send_request(RequestPayload.get_info_request()) for _ in range(5)]

        assert seqs == [1, 2, 3, 4, 5]
        assert [r.seq for r in factory.last.sent_requests()] == seqs

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_identity_wins_over_caller_fields(
        self,
        client: RustPlusClient,
        factory: MockTransportFactory,
        config: ClientConfig,
    ) -> None:
        await client.connect()
        await client.send_request({"getTime": {}, "seq": 500, "playerId": 1, "playerToken": 9})

        [request] = factory.last.sent_requests()
        assert request.seq == 1
        assert request.player_id == config.player_id
        assert request.player_token == config.player_token

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_entity_request(self, client: RustPlusClient, factory: MockTransportFactory) -> None:
        await client.connect()
        await client.send_request({"entityId": 1234, "setEntityValue": {"value": True}})

        [request] = factory.last.sent_requests()
        assert request.entity_id == 1234
        assert request.set_entity_value is not None
        assert request.set_entity_value.value is True

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_invalid_payload_consumes_no_sequence(
        self, client: RustPlusClient, factory: MockTransportFactory
    ) -> None:
        await client.connect()

        with pytest.raises(ValidationError):
            await client.send_request({"getInfo": {}, "getTime": {}})

        assert factory.last.sent == []
        assert client.sequence.current == 0
        assert await client.send_request({"getTime": {}}) == 1

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_request_event_carries_sent_request(
        self, client: RustPlusClient, recorded: list[ClientEvent]
    ) -> None:
        await client.connect()
        await client.send_request({"getMap": {}})
        await client.drain()

        sent = [e for e in recorded if e.type == ClientEventType.REQUEST]
        assert len(sent) == 1
        assert sent[0].request is not None
        assert sent[0].request.seq == 1
        assert sent[0].request.kind == RequestKind.GET_MAP

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_not_connected_after_close(
        self, client: RustPlusClient, factory: MockTransportFactory
    ) -> None:
        await client.connect()
        await factory.last.simulate_close()

        with pytest.raises(NotConnectedError):
            await client.send_request({"getTime": {}})


class TestCallbackRegistration:
    """Tests for callback bookkeeping during dispatch."""

    @pytest.mark.asyncio
    async def test_callback_registered_under_seq(self, client: RustPlusClient) -> None:
        await client.connect()
        seq = await client.send_request({"getTime": {}}, lambda message: True)

        assert client.registry.pending() == [seq]

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_no_callback_no_entry(self, client: RustPlusClient) -> None:
        await client.connect()
        await client.send_request({"getTime": {}})

        assert len(client.registry) == 0

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_registry_capacity(self, factory: MockTransportFactory) -> None:
        config = ClientConfig(
            server="127.0.0.1", port=28082, player_id=1, player_token=2, max_pending_requests=1
        )
        client = RustPlusClient(config, transport_factory=factory)
        await client.connect()

        await client.send_request({"getTime": {}}, lambda message: True)
        with pytest.raises(TooManyPendingRequestsError):
            await client.send_request({"getTime": {}}, lambda message: True)

        # Requests without a callback are not limited
        await client.send_request({"getTime": {}})
        assert len(factory.last.sent) == 2

        await client.disconnect()


class TestSendFailure:
    """Tests for transport write failures."""

    @pytest.mark.asyncio
    async def test_send_failure_discards_entry_and_reports(
        self,
        client: RustPlusClient,
        factory: MockTransportFactory,
        recorded: list[ClientEvent],
    ) -> None:
        await client.connect()
        cause = ConnectionResetError("broken pipe")
        factory.last.fail_send = cause

        with pytest.raises(RequestSendError) as exc_info:
            await client.send_request({"getTime": {}}, lambda message: True)
        await client.drain()

        assert exc_info.value.seq == 1
        assert exc_info.value.cause is cause
        assert len(client.registry) == 0

        types = [e.type for e in recorded]
        assert ClientEventType.REQUEST not in types
        assert types[-1] == ClientEventType.ERROR
        assert recorded[-1].error is exc_info.value

        await client.disconnect()

    @pytest.mark.asyncio
    async def test_no_retry(self, client: RustPlusClient, factory: MockTransportFactory) -> None:
        """A failed send is not re-attempted on the next request."""
        await client.connect()
        transport = factory.last
        transport.fail_send = ConnectionResetError("broken pipe")

        with pytest.raises(RequestSendError):
            await client.send_request({"getTime": {}})

        transport.fail_send = None
        assert await client.send_request({"getInfo": {}}) == 2
        assert [r.kind for r in transport.sent_requests()] == [RequestKind.GET_INFO]

        await client.disconnect()


class RecordingCodec(JsonCodec):
    """JSON on the wire, but remembers what passed through it."""

    def __init__(self) -> None:
        self.encoded: list[int] = []
        self.decoded: list[int] = []

    def encode_request(self, request: AppRequest) -> bytes:
        self.encoded.append(request.seq)
        return super().encode_request(request)

    def decode_message(self, data: bytes) -> AppMessage:
        message = super().decode_message(data)
        self.decoded.append(message.seq)
        return message


class TestInjectedCodec:
    """A codec passed to the client replaces the JSON default."""

    @pytest.mark.asyncio
    async def test_client_uses_injected_codec(
        self, config: ClientConfig, factory: MockTransportFactory
    ) -> None:
        codec = RecordingCodec()
        client = RustPlusClient(config, codec=codec, transport_factory=factory)
        await client.connect()
        factory.last.responder = lambda request: AppMessage.for_response(
            request.seq, success=AppSuccess()
        )

        response = await client.send_request_async({"getTime": {}})

        assert response.success is not None
        assert codec.encoded == [1]
        assert codec.decoded == [1]
        assert isinstance(codec, Codec)

        await client.disconnect()

    def test_default_codec_is_json(self) -> None:
        assert isinstance(create_default_codec(), JsonCodec)
