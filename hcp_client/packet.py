"""Packet codec and envelope builders for HCP frames.

Wire frame layout (UTF-8)::

    <channel>,<operation>\\n{"header": {...}, "body": ...}

The address line routes the packet; the JSON document carries the header
mapping and the operation-specific body. ``body`` is omitted when absent.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .errors import HcpDecodeError, HcpInvalidCommandError

CHANNEL_HW = "hw"
CHANNEL_META = "meta"

OP_CONTROL = "control"
OP_CMD = "cmd"
OP_HELLO = "hello"
OP_WELCOME = "welcome"

REQUEST_ID_KEY = "requestId"

_ADDRESS_SEPARATOR = ","
_FRAME_SEPARATOR = "\n"


@dataclass(frozen=True)
class HcpPacket:
    """Immutable unit of protocol data.

    Attributes:
        channel: Coarse routing namespace (e.g., "hw", "meta").
        operation: Action or event name within the channel.
        header: Read-only metadata mapping.
        body: Operation-specific JSON value, or None.
    """

    channel: str
    operation: str
    header: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self) -> None:
        _validate_token("channel", self.channel)
        _validate_token("operation", self.operation)
        object.__setattr__(self, "header", MappingProxyType(dict(self.header)))

    @property
    def address(self) -> str:
        """Return the comma-joined routing address."""
        return f"{self.channel}{_ADDRESS_SEPARATOR}{self.operation}"

    @property
    def request_id(self) -> Any:
        """Return the correlation id, or None when the header has none."""
        return self.header.get(REQUEST_ID_KEY)

    def is_address(self, channel: str, operation: str) -> bool:
        """Check whether the packet is routed to channel/operation."""
        return self.channel == channel and self.operation == operation

    def to_bytes(self) -> bytes:
        """Serialize the packet into a wire frame."""
        return encode_packet(self.channel, self.operation, self.header, self.body)

    def __str__(self) -> str:
        return f"HcpPacket({self.address}, header={dict(self.header)})"


def _validate_token(name: str, value: Any) -> None:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{name} must be a non-empty string")
    if _ADDRESS_SEPARATOR in value or _FRAME_SEPARATOR in value:
        raise ValueError(f"{name} must not contain ',' or newline: {value!r}")
    if value != value.strip():
        raise ValueError(f"{name} must not have surrounding whitespace: {value!r}")


def encode_packet(
    channel: str,
    operation: str,
    header: Mapping[str, Any] | None = None,
    body: Any = None,
) -> bytes:
    """Encode an address, header and body into a wire frame.

    Args:
        channel: Channel identifier.
        operation: Operation name.
        header: Metadata mapping (JSON-serializable).
        body: Operation payload (JSON-serializable), omitted when None.

    Returns:
        UTF-8 encoded frame bytes.

    Raises:
        ValueError: If channel or operation is not a valid address token.
        TypeError: If header or body is not JSON-serializable.
    """
    _validate_token("channel", channel)
    _validate_token("operation", operation)

    document: dict[str, Any] = {"header": dict(header or {})}
    if body is not None:
        document["body"] = body

    text = (
        f"{channel}{_ADDRESS_SEPARATOR}{operation}"
        f"{_FRAME_SEPARATOR}{json.dumps(document, separators=(',', ':'))}"
    )
    return text.encode("utf-8")


def _parse_address(line: str) -> tuple[str, str]:
    tokens = line.strip().split(_ADDRESS_SEPARATOR)
    if len(tokens) != 2:
        raise HcpDecodeError(f"Address must have exactly two tokens: {line!r}")
    channel, operation = (token.strip() for token in tokens)
    if not channel or not operation:
        raise HcpDecodeError(f"Address tokens must be non-empty: {line!r}")
    return channel, operation


def decode_packet(data: bytes | bytearray | memoryview | str) -> HcpPacket:
    """Parse a wire frame into an HcpPacket.

    Args:
        data: Raw frame as received from the transport.

    Returns:
        Decoded packet.

    Raises:
        HcpDecodeError: If the frame is not valid UTF-8, has no valid
            address line, or does not carry a JSON object document.
    """
    if isinstance(data, str):
        text = data
    else:
        try:
            text = bytes(data).decode("utf-8")
        except UnicodeDecodeError as err:
            raise HcpDecodeError("Frame is not valid UTF-8") from err

    address_line, separator, payload = text.partition(_FRAME_SEPARATOR)
    if not separator:
        raise HcpDecodeError("Frame has no address line")
    channel, operation = _parse_address(address_line)

    try:
        document = json.loads(payload)
    except ValueError as err:
        raise HcpDecodeError(f"Frame payload is not valid JSON: {err}") from err

    if not isinstance(document, dict):
        raise HcpDecodeError("Frame payload must be a JSON object")

    header = document.get("header")
    if header is None:
        header = {}
    elif not isinstance(header, dict):
        raise HcpDecodeError("Frame header must be a JSON object")

    return HcpPacket(
        channel=channel,
        operation=operation,
        header=header,
        body=document.get("body"),
    )


# ---------------------------------------------------------------------------
# Envelope builders
# ---------------------------------------------------------------------------


def build_hello_packet() -> bytes:
    """Construct the handshake frame sent when the transport opens."""
    return encode_packet(CHANNEL_META, OP_HELLO, {})


def build_hw_control_packet(
    *,
    hw_id: str,
    cmd: str,
    args: Sequence[Any],
    request_id: str,
) -> bytes:
    """Construct a hardware control request frame."""
    return encode_packet(
        CHANNEL_HW,
        OP_CONTROL,
        {"hwId": hw_id, REQUEST_ID_KEY: request_id},
        {"hwId": hw_id, "cmd": cmd, "args": list(args)},
    )


def build_meta_cmd_packet(
    *,
    cmd: str,
    args: Sequence[Any],
    request_id: str,
) -> bytes:
    """Construct a meta command request frame."""
    return encode_packet(
        CHANNEL_META,
        OP_CMD,
        {REQUEST_ID_KEY: request_id},
        {"cmd": cmd, "args": list(args)},
    )


# ---------------------------------------------------------------------------
# Command parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HwCommand:
    """Parsed hardware command."""

    hw_id: str
    cmd: str
    args: tuple[Any, ...] = ()


@dataclass(frozen=True)
class MetaCommand:
    """Parsed meta command."""

    cmd: str
    args: tuple[Any, ...] = ()


def _split_dotted(value: Any) -> tuple[str, str]:
    if not isinstance(value, str):
        raise HcpInvalidCommandError(f"Command must be a string, got {value!r}")
    target, _, cmd = value.partition(".")
    if not target or not cmd:
        raise HcpInvalidCommandError(
            f"Command must look like '<target>.<command>': {value!r}"
        )
    return target, cmd


def parse_hw_command(command: str | Mapping[str, Any], args: Sequence[Any]) -> HwCommand:
    """Parse a hardware command in dotted-string or mapping form.

    Accepted forms:
        "wiseXboard.digitalRead" with positional args
        {"hwCmd": "firmata.setPinMode", "args": [5, "PWM"]}
        {"command": "firmata.setPinMode", "args": [...]}
        {"target": "firmata", "command": "setPinMode", "args": [...]}

    Raises:
        HcpInvalidCommandError: If the target or command is missing.
    """
    if isinstance(command, str):
        hw_id, cmd = _split_dotted(command)
        return HwCommand(hw_id=hw_id, cmd=cmd, args=tuple(args))

    if not isinstance(command, Mapping):
        raise HcpInvalidCommandError(f"Unsupported command type: {type(command).__name__}")

    cmd_args = tuple(command.get("args") or ())
    target = command.get("target")
    if target is not None:
        cmd = command.get("command")
        if not isinstance(target, str) or not target:
            raise HcpInvalidCommandError("Command target must be a non-empty string")
        if not isinstance(cmd, str) or not cmd:
            raise HcpInvalidCommandError("Command is missing 'command'")
        return HwCommand(hw_id=target, cmd=cmd, args=cmd_args)

    dotted = command.get("hwCmd", command.get("command"))
    if dotted is None:
        raise HcpInvalidCommandError("Command is missing 'command'")
    hw_id, cmd = _split_dotted(dotted)
    return HwCommand(hw_id=hw_id, cmd=cmd, args=cmd_args)


def parse_meta_command(command: str | Mapping[str, Any], args: Sequence[Any]) -> MetaCommand:
    """Parse a meta command given as a name or a mapping.

    Raises:
        HcpInvalidCommandError: If the command name is missing or empty.
    """
    if isinstance(command, Mapping):
        cmd = command.get("command", command.get("cmd"))
        args = command.get("args") or ()
    else:
        cmd = command

    if not isinstance(cmd, str) or not cmd:
        raise HcpInvalidCommandError("Meta command must be a non-empty string")
    return MetaCommand(cmd=cmd, args=tuple(args))
