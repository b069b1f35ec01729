"""Client error types for HCP hardware-control server interactions."""

from __future__ import annotations


class HcpClientError(Exception):
    """Base error for HCP client failures."""


class HcpTimeout(HcpClientError):
    """Timeout while communicating with the server."""


class HcpConnectionError(HcpClientError):
    """Network connection to the server failed or was lost."""


class HcpHandshakeError(HcpClientError):
    """WebSocket handshake failed."""


class HcpAlreadyStartedError(HcpClientError):
    """A session is already active on this client."""


class HcpInvalidCommandError(HcpClientError, ValueError):
    """Command is missing its target or command segment."""


class HcpDecodeError(HcpClientError, ValueError):
    """Inbound frame is not a well-formed HCP packet."""


class HcpConfigError(HcpClientError):
    """Error loading client configuration."""
