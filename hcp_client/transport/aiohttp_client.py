"""aiohttp-backed WebSocket client for HCP servers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import aiohttp
from aiohttp import WSMsgType

from ..errors import HcpClientError, HcpConnectionError
from .ws import connect_aiohttp_websocket
from .ws_client import HcpWsMessage, HcpWsMessageType

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class HcpAiohttpWsClient:
    """Wrapper around an aiohttp websocket, interchangeable with HcpWsClient.

    A caller-supplied ``session`` is used as is and left open. Without one,
    a private ClientSession is opened on connect() and closed on close().
    """

    def __init__(self, session: aiohttp.ClientSession | None = None) -> None:
        self._session = session
        self._owned_session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

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
        session = self._session
        if session is None:
            session = self._owned_session = aiohttp.ClientSession()

        try:
            self._ws = await connect_aiohttp_websocket(
                session,
                url,
                heartbeat=ping_interval,
                open_timeout=open_timeout,
                close_timeout=close_timeout,
            )
        except HcpClientError:
            await self._close_owned_session()
            raise

    async def close(self) -> None:
        """Close the websocket and any session opened by connect()."""
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()
        await self._close_owned_session()

    async def send_bytes(self, data: bytes) -> None:
        """Send binary data to the websocket.

        Raises:
            HcpConnectionError: If not connected or already closed
        """
        if self._ws is None:
            raise HcpConnectionError("WebSocket is not connected")
        if self._ws.closed:
            raise HcpConnectionError("WebSocket is closed")
        try:
            await self._ws.send_bytes(data)
        except ConnectionResetError as err:
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
                if normalized.type is HcpWsMessageType.CLOSED:
                    return
        except Exception:
            yield HcpWsMessage(type=HcpWsMessageType.ERROR)
            yield HcpWsMessage(type=HcpWsMessageType.CLOSED)
        else:
            # aiohttp ends iteration on CLOSE/CLOSING/CLOSED frames.
            yield HcpWsMessage(type=HcpWsMessageType.CLOSED)

    async def _close_owned_session(self) -> None:
        session, self._owned_session = self._owned_session, None
        if session is not None:
            await session.close()

    @staticmethod
    def _normalize_message(msg: Any) -> HcpWsMessage | None:
        """Normalize aiohttp WSMessage frames into HcpWsMessage."""
        normalized_type = HcpAiohttpWsClient._map_aiohttp_type(msg.type)
        if normalized_type is None:
            return None
        if normalized_type in (HcpWsMessageType.CLOSED, HcpWsMessageType.ERROR):
            return HcpWsMessage(normalized_type)
        return HcpWsMessage(normalized_type, msg.data)

    @staticmethod
    def _map_aiohttp_type(msg_type: WSMsgType) -> HcpWsMessageType | None:
        """Map aiohttp WSMsgType enums to internal message types."""
        if msg_type is WSMsgType.TEXT:
            return HcpWsMessageType.TEXT

        if msg_type is WSMsgType.BINARY:
            return HcpWsMessageType.BINARY

        if msg_type in {WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED}:
            return HcpWsMessageType.CLOSED

        if msg_type is WSMsgType.ERROR:
            return HcpWsMessageType.ERROR

        return None
