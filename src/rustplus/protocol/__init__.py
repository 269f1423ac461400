"""Rust+ companion protocol schema and codec.

Defines the request/message schema exchanged with a Rust server's
companion websocket, independent of how frames are transported.

Key concepts:
- Requests: AppRequest envelopes (seq + identity + exactly one kind)
- Messages: AppMessage frames, either a correlated AppResponse or an
  unsolicited AppBroadcast
- Codec: turns requests into bytes and bytes into messages
"""

from .codec import Codec, JsonCodec, create_default_codec
from .messages import (
    AppBroadcast,
    AppCameraInfo,
    AppEntityChanged,
    AppEntityInfo,
    AppEntityPayload,
    AppError,
    AppInfo,
    AppMap,
    AppMapMarkers,
    AppMessage,
    AppNexusAuth,
    AppResponse,
    AppSuccess,
    AppTeamChat,
    AppTeamInfo,
    AppTeamMessage,
    AppTime,
)
from .requests import AppFlag, AppRequest, RequestKind, RequestPayload

__all__ = [
    # Codec
    "Codec",
    "JsonCodec",
    "create_default_codec",
    # Requests
    "AppRequest",
    "RequestKind",
    "RequestPayload",
    # Messages
    "AppMessage",
    "AppResponse",
    "AppBroadcast",
    "AppError",
    "AppSuccess",
    "AppFlag",
    "AppInfo",
    "AppTime",
    "AppMap",
    "AppMapMarkers",
    "AppTeamInfo",
    "AppTeamChat",
    "AppTeamMessage",
    "AppEntityInfo",
    "AppEntityPayload",
    "AppEntityChanged",
    "AppNexusAuth",
    "AppCameraInfo",
]
