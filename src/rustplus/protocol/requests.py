"""Request definitions for the Rust+ companion protocol.

Requests are sent from the client to the server. Each request is an
AppRequest envelope carrying:
- `seq`: sequence number used to correlate the response
- `playerId` / `playerToken`: the identity obtained from server pairing
- exactly one request kind (`getInfo`, `setEntityValue`, ...)
- `entityId` for the kinds that target an entity

Example (wire spelling):
    {
        "seq": 1,
        "playerId": 76561198000000000,
        "playerToken": 123456789,
        "entityId": 1234,
        "setEntityValue": {"value": true}
    }
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel, to_snake

logger = logging.getLogger(__name__)


class WireModel(BaseModel):
    """Base for all schema models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequestKind(str, Enum):
    """All supported request kinds (wire spelling)."""

    GET_INFO = "getInfo"
    GET_TIME = "getTime"
    GET_MAP = "getMap"
    GET_TEAM_INFO = "getTeamInfo"
    GET_TEAM_CHAT = "getTeamChat"
    SEND_TEAM_MESSAGE = "sendTeamMessage"
    GET_ENTITY_INFO = "getEntityInfo"
    SET_ENTITY_VALUE = "setEntityValue"
    CHECK_SUBSCRIPTION = "checkSubscription"
    SET_SUBSCRIPTION = "setSubscription"
    GET_MAP_MARKERS = "getMapMarkers"
    PROMOTE_TO_LEADER = "promoteToLeader"
    GET_CLAN_INFO = "getClanInfo"
    SET_CLAN_MOTD = "setClanMotd"
    GET_CLAN_CHAT = "getClanChat"
    SEND_CLAN_MESSAGE = "sendClanMessage"
    GET_NEXUS_AUTH = "getNexusAuth"
    CAMERA_SUBSCRIBE = "cameraSubscribe"
    CAMERA_UNSUBSCRIBE = "cameraUnsubscribe"
    CAMERA_INPUT = "cameraInput"


# Kinds the server dispatches against an entity; they need entityId set.
ENTITY_KINDS = frozenset(
    {
        RequestKind.GET_ENTITY_INFO,
        RequestKind.SET_ENTITY_VALUE,
        RequestKind.CHECK_SUBSCRIPTION,
        RequestKind.SET_SUBSCRIPTION,
    }
)

# Envelope fields stamped by the client, never by the caller.
RESERVED_FIELDS = frozenset({"seq", "playerId", "player_id", "playerToken", "player_token"})


class AppEmpty(WireModel):
    """Payload for kinds that carry no arguments."""


class AppSendMessage(WireModel):
    message: str


class AppSetEntityValue(WireModel):
    value: bool


class AppFlag(WireModel):
    value: bool


class AppPromoteToLeader(WireModel):
    steam_id: int


class AppGetNexusAuth(WireModel):
    app_key: str


class AppCameraSubscribe(WireModel):
    camera_id: str


class Vector2(WireModel):
    x: float = 0.0
    y: float = 0.0


class AppCameraInput(WireModel):
    buttons: int = 0
    mouse_delta: Vector2 = Field(default_factory=Vector2)


class RequestPayload(WireModel):
    """The caller-supplied part of a request: exactly one kind.

    This is the tagged union of request kinds. Validation rejects a
    payload with no kind, with more than one kind, or with an
    entity-scoped kind but no `entity_id`.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    entity_id: int | None = None

    get_info: AppEmpty | None = None
    get_time: AppEmpty | None = None
    get_map: AppEmpty | None = None
    get_team_info: AppEmpty | None = None
    get_team_chat: AppEmpty | None = None
    send_team_message: AppSendMessage | None = None
    get_entity_info: AppEmpty | None = None
    set_entity_value: AppSetEntityValue | None = None
    check_subscription: AppEmpty | None = None
    set_subscription: AppFlag | None = None
    get_map_markers: AppEmpty | None = None
    promote_to_leader: AppPromoteToLeader | None = None
    get_clan_info: AppEmpty | None = None
    set_clan_motd: AppSendMessage | None = None
    get_clan_chat: AppEmpty | None = None
    send_clan_message: AppSendMessage | None = None
    get_nexus_auth: AppGetNexusAuth | None = None
    camera_subscribe: AppCameraSubscribe | None = None
    camera_unsubscribe: AppEmpty | None = None
    camera_input: AppCameraInput | None = None

    @model_validator(mode="after")
    def check_one_kind(self) -> RequestPayload:
        kinds = self.kinds()
        if not kinds:
            raise ValueError("Request must contain exactly one request kind, got none")
        if len(kinds) > 1:
            names = ", ".join(k.value for k in kinds)
            raise ValueError(f"Request must contain exactly one request kind, got: {names}")
        if kinds[0] in ENTITY_KINDS and self.entity_id is None:
            raise ValueError(f"{kinds[0].value} requires entity_id")
        return self

    def kinds(self) -> list[RequestKind]:
        """Return the request kinds that are set."""
        return [
            kind
            for kind in RequestKind
            if getattr(self, to_snake(kind.value)) is not None
        ]

    @property
    def kind(self) -> RequestKind:
        """The single request kind carried by this payload."""
        return self.kinds()[0]

    @classmethod
    def coerce(cls, payload: RequestPayload | Mapping[str, Any]) -> RequestPayload:
        """Validate caller input into a RequestPayload.

        Accepts an existing payload or a mapping in either spelling
        (`{"getTime": {}}` or `{"get_time": {}}`). Reserved envelope
        fields are dropped: the client's own identity and sequence win.
        """
        if isinstance(payload, RequestPayload):
            return payload

        data = dict(payload)
        reserved = sorted(RESERVED_FIELDS.intersection(data))
        if reserved:
            logger.warning(f"Ignoring reserved request fields supplied by caller: {reserved}")
            for key in reserved:
                del data[key]
        return cls.model_validate(data)

    # =========================================================================
    # Factory methods for common requests
    # =========================================================================

    @classmethod
    def create(
        cls,
        kind: str | RequestKind,
        body: dict[str, Any] | None = None,
        entity_id: int | None = None,
    ) -> RequestPayload:
        """Factory method for creating a payload of any kind."""
        kind = RequestKind(kind)
        data: dict[str, Any] = {kind.value: body or {}}
        if entity_id is not None:
            data["entityId"] = entity_id
        return cls.model_validate(data)

    @classmethod
    def get_info_request(cls) -> RequestPayload:
        return cls.create(RequestKind.GET_INFO)

    @classmethod
    def get_time_request(cls) -> RequestPayload:
        return cls.create(RequestKind.GET_TIME)

    @classmethod
    def get_map_request(cls) -> RequestPayload:
        return cls.create(RequestKind.GET_MAP)

    @classmethod
    def get_map_markers_request(cls) -> RequestPayload:
        return cls.create(RequestKind.GET_MAP_MARKERS)

    @classmethod
    def get_team_info_request(cls) -> RequestPayload:
        return cls.create(RequestKind.GET_TEAM_INFO)

    @classmethod
    def get_team_chat_request(cls) -> RequestPayload:
        return cls.create(RequestKind.GET_TEAM_CHAT)

    @classmethod
    def send_team_message_request(cls, message: str) -> RequestPayload:
        return cls.create(RequestKind.SEND_TEAM_MESSAGE, {"message": message})

    @classmethod
    def promote_to_leader_request(cls, steam_id: int) -> RequestPayload:
        return cls.create(RequestKind.PROMOTE_TO_LEADER, {"steamId": steam_id})

    @classmethod
    def get_entity_info_request(cls, entity_id: int) -> RequestPayload:
        return cls.create(RequestKind.GET_ENTITY_INFO, entity_id=entity_id)

    @classmethod
    def set_entity_value_request(cls, entity_id: int, value: bool) -> RequestPayload:
        """Create a setEntityValue request (smart switch on/off)."""
        return cls.create(RequestKind.SET_ENTITY_VALUE, {"value": value}, entity_id=entity_id)

    @classmethod
    def check_subscription_request(cls, entity_id: int) -> RequestPayload:
        return cls.create(RequestKind.CHECK_SUBSCRIPTION, entity_id=entity_id)

    @classmethod
    def set_subscription_request(cls, entity_id: int, value: bool) -> RequestPayload:
        return cls.create(RequestKind.SET_SUBSCRIPTION, {"value": value}, entity_id=entity_id)

    @classmethod
    def get_clan_info_request(cls) -> RequestPayload:
        return cls.create(RequestKind.GET_CLAN_INFO)

    @classmethod
    def get_clan_chat_request(cls) -> RequestPayload:
        return cls.create(RequestKind.GET_CLAN_CHAT)

    @classmethod
    def send_clan_message_request(cls, message: str) -> RequestPayload:
        return cls.create(RequestKind.SEND_CLAN_MESSAGE, {"message": message})

    @classmethod
    def set_clan_motd_request(cls, message: str) -> RequestPayload:
        return cls.create(RequestKind.SET_CLAN_MOTD, {"message": message})

    @classmethod
    def get_nexus_auth_request(cls, app_key: str) -> RequestPayload:
        return cls.create(RequestKind.GET_NEXUS_AUTH, {"appKey": app_key})

    @classmethod
    def camera_subscribe_request(cls, camera_id: str) -> RequestPayload:
        """Create a cameraSubscribe request, e.g. for OILRIG1 or a custom id."""
        return cls.create(RequestKind.CAMERA_SUBSCRIBE, {"cameraId": camera_id})

    @classmethod
    def camera_unsubscribe_request(cls) -> RequestPayload:
        return cls.create(RequestKind.CAMERA_UNSUBSCRIBE)

    @classmethod
    def camera_input_request(cls, buttons: int, x: float, y: float) -> RequestPayload:
        """Create a cameraInput request (pressed buttons and mouse delta)."""
        return cls.create(
            RequestKind.CAMERA_INPUT,
            {"buttons": buttons, "mouseDelta": {"x": x, "y": y}},
        )


class AppRequest(RequestPayload):
    """The full request envelope as written to the wire."""

    seq: int = Field(ge=0)
    player_id: int
    player_token: int

    @classmethod
    def envelope(
        cls,
        seq: int,
        player_id: int,
        player_token: int,
        payload: RequestPayload,
    ) -> AppRequest:
        """Build the envelope from a payload and the client's identity.

        Identity and sequence are applied after the payload fields, so
        they always take precedence.
        """
        fields = payload.model_dump(exclude_none=True)
        fields.update(seq=seq, player_id=player_id, player_token=player_token)
        return cls.model_validate(fields)
