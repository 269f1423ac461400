"""Unit tests for the JSON wire codec and inbound message models."""

from __future__ import annotations

import json

import pytest

from rustplus.errors import CodecError
from rustplus.protocol.codec import Codec, JsonCodec, create_default_codec
from rustplus.protocol.messages import AppMessage, AppTeamMessage
from rustplus.protocol.requests import AppRequest, RequestPayload


@pytest.fixture
def codec() -> JsonCodec:
    return JsonCodec()


class TestJsonCodecRequests:
    """Tests for request encoding."""

    def test_default_codec_satisfies_protocol(self) -> None:
        assert isinstance(create_default_codec(), Codec)

    def test_encode_request(self, codec: JsonCodec) -> None:
        request = AppRequest.envelope(1, 76561198000000001, 123, RequestPayload.get_time_request())
        data = json.loads(codec.encode_request(request))

        assert data == {
            "seq": 1,
            "playerId": 76561198000000001,
            "playerToken": 123,
            "getTime": {},
        }

    def test_decode_request_rejects_unknown_fields(self, codec: JsonCodec) -> None:
        frame = json.dumps(
            {"seq": 1, "playerId": 1, "playerToken": 1, "getTime": {}, "bogus": True}
        ).encode()
        with pytest.raises(CodecError):
            codec.decode_request(frame)


class TestJsonCodecMessages:
    """Tests for inbound frame decoding."""

    def test_decode_response(self, codec: JsonCodec) -> None:
        frame = json.dumps(
            {
                "response": {
                    "seq": 1,
                    "time": {
                        "dayLengthMinutes": 60,
                        "timeScale": 1.0,
                        "sunrise": 7.0,
                        "sunset": 20.0,
                        "time": 12.5,
                    },
                }
            }
        ).encode()
        message = codec.decode_message(frame)

        assert message.seq == 1
        assert message.is_correlated()
        assert message.response is not None
        assert message.response.time is not None
        assert message.response.time.day_length_minutes == 60
        assert message.response.time.time == 12.5

    def test_decode_error_response(self, codec: JsonCodec) -> None:
        message = codec.decode_message(b'{"response": {"seq": 4, "error": {"error": "not_found"}}}')
        assert message.response is not None
        assert message.response.is_error()
        assert message.response.error is not None
        assert message.response.error.error == "not_found"

    def test_decode_broadcast(self, codec: JsonCodec) -> None:
        frame = json.dumps(
            {"broadcast": {"entityChanged": {"entityId": 1234, "payload": {"value": True}}}}
        ).encode()
        message = codec.decode_message(frame)

        assert message.seq == 0
        assert not message.is_correlated()
        assert message.broadcast is not None
        assert message.broadcast.entity_changed is not None
        assert message.broadcast.entity_changed.entity_id == 1234
        assert message.broadcast.entity_changed.payload.value is True

    def test_unset_seq_is_zero(self, codec: JsonCodec) -> None:
        """A response without seq decodes to 0 and is not correlated."""
        message = codec.decode_message(b'{"response": {"success": {}}}')
        assert message.seq == 0
        assert not message.is_correlated()

    def test_unknown_fields_are_kept(self, codec: JsonCodec) -> None:
        """Newer server fields do not break decoding."""
        message = codec.decode_message(b'{"response": {"seq": 2, "success": {}, "futureField": 1}}')
        assert message.response is not None
        assert message.response.model_extra == {"futureField": 1}

    def test_decode_text_frame(self, codec: JsonCodec) -> None:
        message = codec.decode_message('{"response": {"seq": 9, "success": {}}}')  # type: ignore[arg-type]
        assert message.seq == 9

    @pytest.mark.parametrize(
        "frame",
        [b"not json", b"\xff\xfe", b"[1, 2, 3]", b'{"response": {"seq": "abc"}}'],
    )
    def test_malformed_frames_raise_codec_error(self, codec: JsonCodec, frame: bytes) -> None:
        with pytest.raises(CodecError):
            codec.decode_message(frame)

    def test_codec_error_is_value_error(self, codec: JsonCodec) -> None:
        with pytest.raises(ValueError):
            codec.decode_message(b"{")

    def test_encode_message_roundtrip(self, codec: JsonCodec) -> None:
        message = AppMessage.for_broadcast(
            team_message={"message": AppTeamMessage(steam_id=1, name="a", message="hi")}
        )
        decoded = codec.decode_message(codec.encode_message(message))

        assert decoded.broadcast is not None
        assert decoded.broadcast.team_message is not None
        assert decoded.broadcast.team_message.message.message == "hi"
