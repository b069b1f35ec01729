"""Client-side protocol engine for HCP hardware-control servers."""

__version__ = "0.1.0"

from .bus import HcpPacketBus, HcpSubscription
from .client import HcpClient, next_request_id
from .client_socket import HcpClientSocket
from .config import HcpClientConfig, load_config
from .errors import (
    HcpAlreadyStartedError,
    HcpClientError,
    HcpConfigError,
    HcpConnectionError,
    HcpDecodeError,
    HcpHandshakeError,
    HcpInvalidCommandError,
    HcpTimeout,
)
from .packet import (
    HcpPacket,
    HwCommand,
    MetaCommand,
    build_hello_packet,
    build_hw_control_packet,
    build_meta_cmd_packet,
    decode_packet,
    encode_packet,
    parse_hw_command,
    parse_meta_command,
)
from .state import HcpConnectionState, HcpStateSignal

__all__ = [
    "HcpAlreadyStartedError",
    "HcpClient",
    "HcpClientConfig",
    "HcpClientError",
    "HcpClientSocket",
    "HcpConfigError",
    "HcpConnectionError",
    "HcpConnectionState",
    "HcpDecodeError",
    "HcpHandshakeError",
    "HcpInvalidCommandError",
    "HcpPacket",
    "HcpPacketBus",
    "HcpStateSignal",
    "HcpSubscription",
    "HcpTimeout",
    "HwCommand",
    "MetaCommand",
    "__version__",
    "build_hello_packet",
    "build_hw_control_packet",
    "build_meta_cmd_packet",
    "decode_packet",
    "encode_packet",
    "load_config",
    "next_request_id",
    "parse_hw_command",
    "parse_meta_command",
]
