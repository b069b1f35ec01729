"""WebSocket helpers for the HCP server transport."""

from __future__ import annotations

import asyncio

import aiohttp
import websockets
from websockets.asyncio.client import ClientConnection
from websockets.exceptions import (
    InvalidHandshake,
    InvalidURI,
    WebSocketException,
)

from ..errors import (
    HcpConnectionError,
    HcpHandshakeError,
    HcpTimeout,
)


async def connect_websocket(
    url: str,
    *,
    ping_interval: int | None = 20,
    open_timeout: float = 15.0,
    close_timeout: float = 2.0,
) -> ClientConnection:
    """Connect to an HCP server WebSocket endpoint.

    Args:
        url: Server URL, e.g. ``ws://127.0.0.1:13997``
        ping_interval: Interval for keepalive ping frames, None to disable
        open_timeout: Connection timeout
        close_timeout: Time allowed for the closing handshake
    """
    try:
        return await asyncio.wait_for(
            websockets.connect(
                url,
                ping_interval=ping_interval,
                close_timeout=close_timeout,
                max_size=None,
            ),
            timeout=open_timeout,
        )
    except TimeoutError as err:
        raise HcpTimeout("WebSocket connection timed out") from err
    except (InvalidHandshake, InvalidURI) as err:
        raise HcpHandshakeError("WebSocket handshake failed") from err
    except (OSError, WebSocketException) as err:
        raise HcpConnectionError("WebSocket connection failed") from err


async def connect_aiohttp_websocket(
    session: aiohttp.ClientSession,
    url: str,
    *,
    heartbeat: float | None = 20,
    open_timeout: float = 15.0,
    close_timeout: float = 2.0,
) -> aiohttp.ClientWebSocketResponse:
    """Connect to an HCP server WebSocket endpoint through an aiohttp session.

    Errors are translated the same way as connect_websocket().
    """
    try:
        return await asyncio.wait_for(
            session.ws_connect(
                url,
                heartbeat=heartbeat,
                timeout=aiohttp.ClientWSTimeout(ws_close=close_timeout),
                max_msg_size=0,
            ),
            timeout=open_timeout,
        )
    except TimeoutError as err:
        raise HcpTimeout("WebSocket connection timed out") from err
    except (aiohttp.WSServerHandshakeError, aiohttp.InvalidURL) as err:
        raise HcpHandshakeError("WebSocket handshake failed") from err
    except (OSError, aiohttp.ClientError) as err:
        raise HcpConnectionError("WebSocket connection failed") from err
