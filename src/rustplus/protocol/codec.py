"""Wire codec for AppRequest / AppMessage frames.

The client treats the codec as an opaque pair of pure functions:
requests in, bytes out; bytes in, messages out. Any object satisfying
the Codec protocol can be injected.

Real Rust servers speak protobuf (the AppRequest/AppMessage schema in
rustplus.proto). JsonCodec, the default, writes the same models as
compact UTF-8 JSON using the wire (camelCase) names; it is what the
test doubles and local fakes speak, and it cannot talk to a game
server. For production, generate protobuf bindings and pass a Codec
wrapping them:

    client = RustPlusClient(config, codec=ProtobufCodec())
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from ..errors import CodecError
from .messages import AppMessage
from .requests import AppRequest


@runtime_checkable
class Codec(Protocol):
    """Protocol for frame codecs.

    Implementations must be deterministic and side-effect free, and
    must raise CodecError (and only CodecError) for malformed bytes.
    """

    def encode_request(self, request: AppRequest) -> bytes:
        """Encode an outbound request."""
        ...

    def decode_request(self, data: bytes) -> AppRequest:
        """Decode a request (used to report what was actually sent)."""
        ...

    def encode_message(self, message: AppMessage) -> bytes:
        """Encode an inbound message (used by servers and test doubles)."""
        ...

    def decode_message(self, data: bytes) -> AppMessage:
        """Decode an inbound frame."""
        ...


class JsonCodec:
    """Codec writing schema models as UTF-8 JSON."""

    def encode_request(self, request: AppRequest) -> bytes:
        return request.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")

    def decode_request(self, data: bytes) -> AppRequest:
        try:
            return AppRequest.model_validate_json(data)
        except (ValidationError, ValueError) as e:
            raise CodecError(f"Malformed request frame: {e}") from e

    def encode_message(self, message: AppMessage) -> bytes:
        return message.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")

    def decode_message(self, data: bytes) -> AppMessage:
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            return AppMessage.model_validate_json(data)
        except (ValidationError, ValueError) as e:
            raise CodecError(f"Malformed message frame: {e}") from e


def create_default_codec() -> Codec:
    """Create the codec used when none is injected.

    This is JsonCodec, which a real Rust server does not understand.
    """
    return JsonCodec()
