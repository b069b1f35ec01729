"""Client configuration and YAML loading."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import HcpConfigError
from .transport import TRANSPORT_WEBSOCKETS, TRANSPORTS

DEFAULT_REQUEST_TIMEOUT = 7.0

CLIENT_TYPES = ("normal", "blockcoding")


@dataclass
class HcpClientConfig:
    """Configuration for an HCP client session.

    Attributes:
        url: WebSocket URL of the HCP server (e.g., ws://127.0.0.1:13997).
        request_timeout: Seconds to wait for a response, measured from send.
        open_timeout: Seconds allowed for the websocket to open.
        ping_interval: Keepalive ping interval in seconds, None to disable.
        close_timeout: Seconds allowed for the websocket close handshake.
        client_type: Kind of client application ("normal" or "blockcoding").
            Informational; exposed as HcpClient.client_type and never sent.
        transport: WebSocket backend, "websockets" (default) or "aiohttp".
        fail_pending_on_close: Fail in-flight requests immediately when the
            connection closes instead of letting them time out.
    """

    url: str
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    open_timeout: float = 15.0
    ping_interval: int | None = 20
    close_timeout: float = 2.0
    client_type: str = "normal"
    transport: str = TRANSPORT_WEBSOCKETS
    fail_pending_on_close: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url.startswith(("ws://", "wss://")):
            raise ValueError(f"url must be a ws:// or wss:// URL, got {self.url!r}")
        for name in ("request_timeout", "open_timeout", "close_timeout"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"{name} must be a positive number, got {value!r}")
        if self.ping_interval is not None and self.ping_interval <= 0:
            raise ValueError(f"ping_interval must be positive or None, got {self.ping_interval!r}")
        if self.client_type not in CLIENT_TYPES:
            raise ValueError(f"client_type must be one of {CLIENT_TYPES}, got {self.client_type!r}")
        if self.transport not in TRANSPORTS:
            raise ValueError(f"transport must be one of {TRANSPORTS}, got {self.transport!r}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HcpClientConfig:
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise HcpConfigError(f"Unknown config keys: {', '.join(unknown)}")
        if "url" not in data:
            raise HcpConfigError("Config requires 'url'")
        try:
            return cls(**data)
        except (TypeError, ValueError) as err:
            raise HcpConfigError(f"Invalid config: {err}") from err


def _load_yaml(path: Path) -> Any:
    """Load YAML file with error handling."""
    if not path.exists():
        raise HcpConfigError(f"File not found: {path}")
    with path.open() as f:
        try:
            return yaml.safe_load(f) or {}
        except yaml.YAMLError as err:
            raise HcpConfigError(f"Invalid YAML in {path}: {err}") from err


def load_config(path: str | Path) -> HcpClientConfig:
    """Load client configuration from a YAML file.

    Example file::

        url: ws://127.0.0.1:13997
        request_timeout: 7
        client_type: normal

    Raises:
        HcpConfigError: If the file is missing, is not a mapping, or holds
            unknown or invalid values.
    """
    data = _load_yaml(Path(path))
    if not isinstance(data, dict):
        raise HcpConfigError(f"Config file must contain a mapping: {path}")
    return HcpClientConfig.from_dict(data)
