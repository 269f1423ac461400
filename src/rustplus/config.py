"""Client configuration.

Identity is the immutable pairing information stamped onto every
request. ClientConfig adds the tunables for timeouts, websocket
keep-alive and the pending-request bound.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PROXY_HOST = "companion-rust.facepunch.com"

# Wire type of playerToken is int32.
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


class Identity(BaseModel):
    """Who we are and which server we talk to.

    Values arrive from server pairing as strings (the pairing
    notification carries everything as text), so numeric fields accept
    numeric strings.
    """

    model_config = ConfigDict(frozen=True)

    server: str = Field(min_length=1)
    port: int = Field(gt=0, lt=65536)
    player_id: int = Field(ge=0)
    player_token: int = Field(ge=_INT32_MIN, le=_INT32_MAX)
    use_facepunch_proxy: bool = False

    def address(self, proxy_host: str = DEFAULT_PROXY_HOST) -> str:
        """Websocket URL for this identity.

        Direct mode talks to the game server's app.port; relayed mode
        goes through Facepunch's companion proxy over TLS.
        """
        if self.use_facepunch_proxy:
            return f"wss://{proxy_host}/game/{self.server}/{self.port}"
        return f"ws://{self.server}:{self.port}"


@dataclass
class ClientConfig:
    """Configuration for RustPlusClient."""

    # Identity (from server pairing)
    server: str
    port: int | str
    player_id: int | str
    player_token: int | str
    use_facepunch_proxy: bool = False

    # Requests
    request_timeout: float = 10.0
    max_pending_requests: int = 1024

    # Websocket settings
    open_timeout: float = 10.0
    ping_interval: float | None = 30.0
    ping_timeout: float | None = 10.0
    close_timeout: float = 1.0
    max_frame_size: int | None = 32 * 1024 * 1024
    proxy_host: str = DEFAULT_PROXY_HOST

    def identity(self) -> Identity:
        """Validate and freeze the identity part of this config."""
        return Identity(
            server=self.server,
            port=self.port,
            player_id=self.player_id,
            player_token=self.player_token,
            use_facepunch_proxy=self.use_facepunch_proxy,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientConfig:
        """Build a config from RUSTPLUS_* environment variables.

        Recognised variables:
            RUSTPLUS_SERVER, RUSTPLUS_PORT, RUSTPLUS_PLAYER_ID,
            RUSTPLUS_PLAYER_TOKEN (required)
            RUSTPLUS_USE_PROXY ("1"/"true"/"yes" to enable)
            RUSTPLUS_REQUEST_TIMEOUT (seconds)

        Keyword overrides take precedence over the environment.
        """
        values: dict[str, Any] = {}
        for name, env_var in (
            ("server", "RUSTPLUS_SERVER"),
            ("port", "RUSTPLUS_PORT"),
            ("player_id", "RUSTPLUS_PLAYER_ID"),
            ("player_token", "RUSTPLUS_PLAYER_TOKEN"),
        ):
            if env_value := os.getenv(env_var):
                values[name] = env_value

        if proxy := os.getenv("RUSTPLUS_USE_PROXY"):
            values["use_facepunch_proxy"] = proxy.strip().lower() in ("1", "true", "yes", "on")
        if timeout := os.getenv("RUSTPLUS_REQUEST_TIMEOUT"):
            values["request_timeout"] = float(timeout)

        values.update(overrides)

        missing = [
            name
            for name in ("server", "port", "player_id", "player_token")
            if name not in values
        ]
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")
        return cls(**values)
