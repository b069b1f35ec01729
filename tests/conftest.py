"""Pytest configuration and fixtures for hcp_client tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterator
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from hcp_client import HcpClient
from hcp_client.errors import HcpConnectionError
from hcp_client.packet import HcpPacket, decode_packet, encode_packet
from hcp_client.transport import HcpWsMessage, HcpWsMessageType

SERVER_URL = "ws://127.0.0.1:13997"


async def settle(rounds: int = 10) -> None:
    """Let the listener task process queued frames."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeWsClient:
    """In-memory stand-in for HcpWsClient driven by an inbox queue."""

    def __init__(self) -> None:
        self.connected_url: str | None = None
        self.connect_kwargs: dict[str, Any] = {}
        self.connect_error: Exception | None = None
        self.auto_welcome = False
        self.closed = False
        self.sent: list[bytes] = []
        self.sent_queue: asyncio.Queue[HcpPacket] = asyncio.Queue()
        self._inbox: asyncio.Queue[HcpWsMessage] = asyncio.Queue()

    async def connect(self, url: str, **kwargs: Any) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_url = url
        self.connect_kwargs = kwargs

    async def close(self) -> None:
        self.closed = True

    async def send_bytes(self, data: bytes) -> None:
        if self.closed:
            raise HcpConnectionError("WebSocket is closed")
        self.sent.append(data)
        packet = decode_packet(data)
        self.sent_queue.put_nowait(packet)
        if self.auto_welcome and packet.is_address("meta", "hello"):
            self.feed_packet("meta", "welcome")

    def feed(self, data: str | bytes) -> None:
        msg_type = HcpWsMessageType.TEXT if isinstance(data, str) else HcpWsMessageType.BINARY
        self._inbox.put_nowait(HcpWsMessage(msg_type, data))

    def feed_packet(
        self,
        channel: str,
        operation: str,
        header: dict[str, Any] | None = None,
        body: Any = None,
    ) -> None:
        self.feed(encode_packet(channel, operation, header, body))

    def feed_error(self) -> None:
        self._inbox.put_nowait(HcpWsMessage(HcpWsMessageType.ERROR))

    def feed_close(self) -> None:
        self._inbox.put_nowait(HcpWsMessage(HcpWsMessageType.CLOSED))

    def sent_packets(self) -> list[HcpPacket]:
        return [decode_packet(frame) for frame in self.sent]

    def __aiter__(self) -> AsyncIterator[HcpWsMessage]:
        return self._iter_messages()

    async def _iter_messages(self) -> AsyncIterator[HcpWsMessage]:
        while True:
            yield await self._inbox.get()


class AsyncIteratorMock:
    """Helper class to create a proper async iterator mock."""

    def __init__(self, items: list, *, raise_on_iter: Exception | None = None):
        self._items = items
        self._index = 0
        self._raise_on_iter = raise_on_iter
        self.close = AsyncMock()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._index >= len(self._items):
            if self._raise_on_iter is not None:
                raise self._raise_on_iter
            raise StopAsyncIteration
        item = self._items[self._index]
        self._index += 1
        return item


@pytest.fixture
def fake_ws() -> Iterator[FakeWsClient]:
    """Patch the socket's websocket client with a FakeWsClient."""
    ws = FakeWsClient()
    with patch("hcp_client.client_socket.HcpWsClient", return_value=ws):
        yield ws


@pytest_asyncio.fixture
async def connected_client(fake_ws: FakeWsClient) -> AsyncIterator[HcpClient]:
    """Create a client that has completed the hello/welcome handshake."""
    fake_ws.auto_welcome = True
    client = HcpClient(SERVER_URL, request_timeout=0.5)
    client.connect()
    await client.wait_for_connected(timeout=1.0)
    # Drop the hello frame so tests only see their own requests.
    await fake_ws.sent_queue.get()
    yield client
    await client.close()
