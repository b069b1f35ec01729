"""Transport layer for the HCP client.

This package contains the websocket IO the protocol engine runs on.

Components:
- ws: WebSocket connection establishment (websockets and aiohttp)
- ws_client: websockets-backed frame sending and normalized message iteration
- aiohttp_client: the same interface over an aiohttp ClientSession
"""

from .aiohttp_client import HcpAiohttpWsClient
from .ws import connect_aiohttp_websocket, connect_websocket
from .ws_client import HcpWsClient, HcpWsMessage, HcpWsMessageType

TRANSPORT_WEBSOCKETS = "websockets"
TRANSPORT_AIOHTTP = "aiohttp"
TRANSPORTS = (TRANSPORT_WEBSOCKETS, TRANSPORT_AIOHTTP)

__all__ = [
    "TRANSPORTS",
    "TRANSPORT_AIOHTTP",
    "TRANSPORT_WEBSOCKETS",
    "HcpAiohttpWsClient",
    "HcpWsClient",
    "HcpWsMessage",
    "HcpWsMessageType",
    "connect_aiohttp_websocket",
    "connect_websocket",
]
