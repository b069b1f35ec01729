"""WebSocket client wrapper for HCP servers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed

from ..errors import HcpConnectionError
from .ws import connect_websocket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class HcpWsMessageType(Enum):
    """Normalized WebSocket message types."""

    TEXT = "text"
    BINARY = "binary"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class HcpWsMessage:
    """Normalized WebSocket message payload."""

    type: HcpWsMessageType
    data: str | bytes | None = None


class HcpWsClient:
    """Wrapper around websockets library for HCP servers."""

    def __init__(self) -> None:
        self._ws: ClientConnection | None = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(
        self,
        url: str,
        *,
        ping_interval: int | None = 20,
        open_timeout: float = 15.0,
        close_timeout: float = 2.0,
    ) -> None:
        """Connect to the server websocket."""
        self._ws = await connect_websocket(
            url,
            ping_interval=ping_interval,
            open_timeout=open_timeout,
            close_timeout=close_timeout,
        )

    async def close(self) -> None:
        """Close the websocket connection."""
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()

    async def send_bytes(self, data: bytes) -> None:
        """Send binary data to the websocket.

        Args:
            data: Binary data to send

        Raises:
            HcpConnectionError: If not connected or already closed
        """
        if self._ws is None:
            raise HcpConnectionError("WebSocket is not connected")
        try:
            await self._ws.send(data)
        except ConnectionClosed as err:
            raise HcpConnectionError("WebSocket is closed") from err

    def __aiter__(self) -> AsyncIterator[HcpWsMessage]:
        if self._ws is None:
            raise HcpConnectionError("WebSocket is not connected")
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[HcpWsMessage]:
        if self._ws is None:
            raise HcpConnectionError("WebSocket is not connected")

        try:
            async for msg in self._ws:
                normalized = self._normalize_message(msg)
                if normalized is None:
                    continue
                yield normalized
        except ConnectionClosed:
            yield HcpWsMessage(type=HcpWsMessageType.CLOSED)
        except Exception:
            # The receive loop cannot resume after a failure; report it, then close.
            yield HcpWsMessage(type=HcpWsMessageType.ERROR)
            yield HcpWsMessage(type=HcpWsMessageType.CLOSED)
        else:
            # Normal iteration completion means the peer closed gracefully.
            yield HcpWsMessage(type=HcpWsMessageType.CLOSED)

    @staticmethod
    def _normalize_message(msg: Any) -> HcpWsMessage | None:
        """Normalize websocket frames into HcpWsMessage."""
        if isinstance(msg, (bytes, bytearray, memoryview)):
            return HcpWsMessage(HcpWsMessageType.BINARY, bytes(msg))
        if isinstance(msg, str):
            return HcpWsMessage(HcpWsMessageType.TEXT, msg)

        return None
