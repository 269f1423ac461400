"""Message definitions for the Rust+ companion protocol.

Every frame the server sends is an AppMessage. It is either:
- a response: `response` is set and carries the `seq` of the request it
  answers, plus one payload (`info`, `time`, ...) or an `error`
- a broadcast: `broadcast` is set and carries an unsolicited event
  (team chat, entity changed, camera rays, ...)

A response with `seq` 0 is never correlated: 0 is what an unset
sequence field decodes to.

Example (response):
    {"response": {"seq": 1, "time": {"dayLengthMinutes": 60, "time": 12.5, ...}}}

Example (broadcast):
    {"broadcast": {"entityChanged": {"entityId": 1234, "payload": {"value": true}}}}
"""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from .requests import AppFlag, WireModel


class InboundModel(WireModel):
    """Base for server-sent models; unknown fields are kept, not rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# =============================================================================
# Response payloads
# =============================================================================


class AppSuccess(InboundModel):
    """Empty acknowledgment for requests without a data response."""


class AppError(InboundModel):
    error: str


class AppInfo(InboundModel):
    name: str = ""
    header_image: str = ""
    url: str = ""
    map: str = ""
    map_size: int = 0
    wipe_time: int = 0
    players: int = 0
    max_players: int = 0
    queued_players: int = 0
    seed: int = 0
    salt: int = 0
    logo_image: str | None = None
    nexus: str | None = None
    nexus_id: int | None = None
    nexus_zone: str | None = None


class AppTime(InboundModel):
    day_length_minutes: float = 0.0
    time_scale: float = 0.0
    sunrise: float = 0.0
    sunset: float = 0.0
    time: float = 0.0


class Monument(InboundModel):
    token: str
    x: float
    y: float


class AppMap(InboundModel):
    width: int = 0
    height: int = 0
    jpg_image: str = ""  # base64 encoded
    ocean_margin: int = 0
    monuments: list[Monument] = Field(default_factory=list)
    background: str | None = None


class AppMarker(InboundModel):
    id: int = 0
    type: int = 0
    x: float = 0.0
    y: float = 0.0
    steam_id: int | None = None
    rotation: float | None = None
    radius: float | None = None
    name: str | None = None
    out_of_stock: bool | None = None
    sell_orders: list[dict[str, Any]] = Field(default_factory=list)


class AppMapMarkers(InboundModel):
    markers: list[AppMarker] = Field(default_factory=list)


class TeamMember(InboundModel):
    steam_id: int
    name: str = ""
    x: float = 0.0
    y: float = 0.0
    is_online: bool = False
    spawn_time: int = 0
    is_alive: bool = False
    death_time: int = 0


class MapNote(InboundModel):
    type: int = 0
    x: float = 0.0
    y: float = 0.0


class AppTeamInfo(InboundModel):
    leader_steam_id: int = 0
    members: list[TeamMember] = Field(default_factory=list)
    map_notes: list[MapNote] = Field(default_factory=list)
    leader_map_notes: list[MapNote] = Field(default_factory=list)


class AppTeamMessage(InboundModel):
    steam_id: int
    name: str = ""
    message: str = ""
    color: str = ""
    time: int = 0


class AppTeamChat(InboundModel):
    messages: list[AppTeamMessage] = Field(default_factory=list)


class AppEntityPayload(InboundModel):
    value: bool | None = None
    items: list[dict[str, Any]] = Field(default_factory=list)
    capacity: int | None = None
    has_protection: bool | None = None
    protection_expiry: int | None = None


class AppEntityInfo(InboundModel):
    type: int = 0
    payload: AppEntityPayload = Field(default_factory=AppEntityPayload)


class AppNexusAuth(InboundModel):
    server_id: str = ""
    player_token: int = 0


class AppCameraInfo(InboundModel):
    width: int = 0
    height: int = 0
    near_plane: float = 0.0
    far_plane: float = 0.0
    control_flags: int = 0


class AppResponse(InboundModel):
    """A correlated answer to a request."""

    seq: int = 0
    success: AppSuccess | None = None
    error: AppError | None = None
    info: AppInfo | None = None
    time: AppTime | None = None
    map: AppMap | None = None
    team_info: AppTeamInfo | None = None
    team_chat: AppTeamChat | None = None
    entity_info: AppEntityInfo | None = None
    flag: AppFlag | None = None
    map_markers: AppMapMarkers | None = None
    clan_info: dict[str, Any] | None = None
    clan_chat: dict[str, Any] | None = None
    nexus_auth: AppNexusAuth | None = None
    camera_subscribe_info: AppCameraInfo | None = None

    def is_error(self) -> bool:
        """Check if the server rejected the request."""
        return self.error is not None


# =============================================================================
# Broadcast payloads
# =============================================================================


class AppTeamChanged(InboundModel):
    player_id: int = 0
    team_info: AppTeamInfo = Field(default_factory=AppTeamInfo)


class AppNewTeamMessage(InboundModel):
    message: AppTeamMessage


class AppEntityChanged(InboundModel):
    entity_id: int
    payload: AppEntityPayload = Field(default_factory=AppEntityPayload)


class AppBroadcast(InboundModel):
    """An unsolicited server event."""

    team_changed: AppTeamChanged | None = None
    team_message: AppNewTeamMessage | None = None
    entity_changed: AppEntityChanged | None = None
    clan_changed: dict[str, Any] | None = None
    clan_message: dict[str, Any] | None = None
    camera_rays: dict[str, Any] | None = None


class AppMessage(InboundModel):
    """A decoded inbound frame."""

    response: AppResponse | None = None
    broadcast: AppBroadcast | None = None

    @property
    def seq(self) -> int:
        """Sequence number of the response, 0 when there is none."""
        return self.response.seq if self.response is not None else 0

    def is_correlated(self) -> bool:
        """Check if this message can be matched to a pending request."""
        return self.seq != 0

    @classmethod
    def for_response(cls, seq: int, **payload: Any) -> AppMessage:
        """Build a response message (used by test servers and mocks)."""
        return cls(response=AppResponse(seq=seq, **payload))

    @classmethod
    def for_error(cls, seq: int, error: str) -> AppMessage:
        return cls(response=AppResponse(seq=seq, error=AppError(error=error)))

    @classmethod
    def for_broadcast(cls, **payload: Any) -> AppMessage:
        return cls(broadcast=AppBroadcast(**payload))
