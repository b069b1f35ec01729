"""Tests for HcpAiohttpWsClient and connect_aiohttp_websocket()."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from aiohttp import WSMsgType

from hcp_client.errors import HcpConnectionError, HcpHandshakeError, HcpTimeout
from hcp_client.transport import connect_aiohttp_websocket
from hcp_client.transport.aiohttp_client import HcpAiohttpWsClient
from hcp_client.transport.ws_client import HcpWsMessage, HcpWsMessageType

from .conftest import AsyncIteratorMock

URL = "ws://127.0.0.1:13997"


def _msg(msg_type: WSMsgType, data=None) -> MagicMock:
    msg = MagicMock()
    msg.type = msg_type
    msg.data = data
    return msg


def _session(ws_connect: AsyncMock | None = None) -> MagicMock:
    session = MagicMock()
    session.ws_connect = ws_connect or AsyncMock()
    session.close = AsyncMock()
    return session


class TestConnectAiohttpWebsocket:
    """Tests for connect_aiohttp_websocket() error translation."""

    @pytest.mark.asyncio
    async def test_connect_success(self):
        """Test successful connection passes keepalive and close settings."""
        mock_ws = MagicMock()
        session = _session(AsyncMock(return_value=mock_ws))

        result = await connect_aiohttp_websocket(
            session, URL, heartbeat=10, close_timeout=1.0
        )

        assert result is mock_ws
        args, kwargs = session.ws_connect.call_args
        assert args == (URL,)
        assert kwargs["heartbeat"] == 10
        assert kwargs["max_msg_size"] == 0
        assert kwargs["timeout"].ws_close == 1.0

    @pytest.mark.asyncio
    async def test_connect_timeout(self):
        """Test connection timeout raises HcpTimeout."""
        session = _session(AsyncMock(side_effect=TimeoutError()))
        with pytest.raises(HcpTimeout, match="timed out"):
            await connect_aiohttp_websocket(session, URL)

    @pytest.mark.asyncio
    async def test_connect_handshake_rejected(self):
        """Test a rejected upgrade raises HcpHandshakeError."""
        error = aiohttp.WSServerHandshakeError(MagicMock(), (), status=400)
        session = _session(AsyncMock(side_effect=error))
        with pytest.raises(HcpHandshakeError, match="handshake failed"):
            await connect_aiohttp_websocket(session, URL)

    @pytest.mark.asyncio
    async def test_connect_invalid_url(self):
        """Test an invalid URL raises HcpHandshakeError."""
        session = _session(AsyncMock(side_effect=aiohttp.InvalidURL("nope")))
        with pytest.raises(HcpHandshakeError):
            await connect_aiohttp_websocket(session, "nope")

    @pytest.mark.asyncio
    async def test_connect_refused(self):
        """Test client errors raise HcpConnectionError."""
        session = _session(
            AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        )
        with pytest.raises(HcpConnectionError, match="connection failed"):
            await connect_aiohttp_websocket(session, URL)


class TestHcpAiohttpWsClientLifecycle:
    """Tests for connect()/close() and session ownership."""

    @pytest.mark.asyncio
    async def test_connect_with_private_session(self):
        """Test a private session is opened on connect and closed on close."""
        mock_ws = AsyncMock()
        session = _session()

        with (
            patch(
                "hcp_client.transport.aiohttp_client.aiohttp.ClientSession",
                return_value=session,
            ),
            patch(
                "hcp_client.transport.aiohttp_client.connect_aiohttp_websocket",
                return_value=mock_ws,
            ) as mock_connect,
        ):
            client = HcpAiohttpWsClient()
            await client.connect(URL, ping_interval=None)

            mock_connect.assert_called_once_with(
                session,
                URL,
                heartbeat=None,
                open_timeout=15.0,
                close_timeout=2.0,
            )
            assert client.connected

            await client.close()
            await client.close()

        mock_ws.close.assert_called_once()
        session.close.assert_called_once()
        assert not client.connected

    @pytest.mark.asyncio
    async def test_connect_failure_closes_private_session(self):
        """Test a failed connect does not leak the private session."""
        session = _session()

        with (
            patch(
                "hcp_client.transport.aiohttp_client.aiohttp.ClientSession",
                return_value=session,
            ),
            patch(
                "hcp_client.transport.aiohttp_client.connect_aiohttp_websocket",
                side_effect=HcpTimeout("WebSocket connection timed out"),
            ),
        ):
            client = HcpAiohttpWsClient()
            with pytest.raises(HcpTimeout):
                await client.connect(URL)

        session.close.assert_called_once()
        assert not client.connected

    @pytest.mark.asyncio
    async def test_supplied_session_left_open(self):
        """Test a caller's session is reused and not closed."""
        mock_ws = AsyncMock()
        session = _session()

        with patch(
            "hcp_client.transport.aiohttp_client.connect_aiohttp_websocket",
            return_value=mock_ws,
        ) as mock_connect:
            client = HcpAiohttpWsClient(session)
            await client.connect(URL)
            await client.close()

        assert mock_connect.call_args.args[0] is session
        mock_ws.close.assert_called_once()
        session.close.assert_not_called()


class TestHcpAiohttpWsClientSend:
    """Tests for HcpAiohttpWsClient.send_bytes()."""

    async def _connected(self, mock_ws) -> HcpAiohttpWsClient:
        with patch(
            "hcp_client.transport.aiohttp_client.connect_aiohttp_websocket",
            return_value=mock_ws,
        ):
            client = HcpAiohttpWsClient(_session())
            await client.connect(URL)
            return client

    @pytest.mark.asyncio
    async def test_send_bytes_success(self):
        """Test sending binary data."""
        mock_ws = AsyncMock()
        mock_ws.closed = False
        client = await self._connected(mock_ws)

        await client.send_bytes(b"meta,hello\n{}")

        mock_ws.send_bytes.assert_called_once_with(b"meta,hello\n{}")

    @pytest.mark.asyncio
    async def test_send_not_connected(self):
        """Test sending raises when not connected."""
        client = HcpAiohttpWsClient()
        with pytest.raises(HcpConnectionError, match="not connected"):
            await client.send_bytes(b"data")

    @pytest.mark.asyncio
    async def test_send_after_peer_closed(self):
        """Test a closed websocket is reported before writing."""
        mock_ws = AsyncMock()
        mock_ws.closed = True
        client = await self._connected(mock_ws)

        with pytest.raises(HcpConnectionError, match="closed"):
            await client.send_bytes(b"data")
        mock_ws.send_bytes.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_reset_translated(self):
        """Test a reset transport on send is translated."""
        mock_ws = AsyncMock()
        mock_ws.closed = False
        mock_ws.send_bytes.side_effect = ConnectionResetError("closing transport")
        client = await self._connected(mock_ws)

        with pytest.raises(HcpConnectionError, match="closed"):
            await client.send_bytes(b"data")


class TestHcpAiohttpWsClientIteration:
    """Tests for HcpAiohttpWsClient async iteration."""

    @pytest.mark.asyncio
    async def test_iter_not_connected(self):
        """Test iteration raises when not connected."""
        client = HcpAiohttpWsClient()
        with pytest.raises(HcpConnectionError, match="not connected"):
            client.__aiter__()

    async def _collect(self, mock_ws) -> list[HcpWsMessage]:
        with patch(
            "hcp_client.transport.aiohttp_client.connect_aiohttp_websocket",
            return_value=mock_ws,
        ):
            client = HcpAiohttpWsClient(_session())
            await client.connect(URL)
            return [msg async for msg in client]

    @pytest.mark.asyncio
    async def test_iter_data_frames(self):
        """Test data frames are delivered in order and control frames skipped."""
        messages = await self._collect(
            AsyncIteratorMock(
                [
                    _msg(WSMsgType.BINARY, b'meta,welcome\n{"header":{}}'),
                    _msg(WSMsgType.PING, b""),
                    _msg(WSMsgType.TEXT, 'hw,notify\n{"header":{}}'),
                ]
            )
        )

        assert messages == [
            HcpWsMessage(HcpWsMessageType.BINARY, b'meta,welcome\n{"header":{}}'),
            HcpWsMessage(HcpWsMessageType.TEXT, 'hw,notify\n{"header":{}}'),
            HcpWsMessage(HcpWsMessageType.CLOSED),
        ]

    @pytest.mark.asyncio
    async def test_iter_error_frame(self):
        """Test ERROR frames pass through without their payload."""
        messages = await self._collect(
            AsyncIteratorMock([_msg(WSMsgType.ERROR, RuntimeError("x"))])
        )

        assert messages == [
            HcpWsMessage(HcpWsMessageType.ERROR),
            HcpWsMessage(HcpWsMessageType.CLOSED),
        ]

    @pytest.mark.asyncio
    async def test_iter_stops_at_close_frame(self):
        """Test a close frame ends iteration."""
        messages = await self._collect(
            AsyncIteratorMock(
                [_msg(WSMsgType.CLOSE, 1000), _msg(WSMsgType.TEXT, "late")]
            )
        )

        assert messages == [HcpWsMessage(HcpWsMessageType.CLOSED)]

    @pytest.mark.asyncio
    async def test_iter_unexpected_error(self):
        """Test unexpected errors report ERROR, then CLOSED."""
        messages = await self._collect(
            AsyncIteratorMock([], raise_on_iter=RuntimeError("Unexpected"))
        )

        assert [m.type for m in messages] == [
            HcpWsMessageType.ERROR,
            HcpWsMessageType.CLOSED,
        ]


class TestHcpAiohttpWsClientNormalization:
    """Tests for aiohttp WSMsgType normalization."""

    def test_map_text_and_binary(self):
        """Test mapping aiohttp data frame types."""
        assert HcpAiohttpWsClient._map_aiohttp_type(WSMsgType.TEXT) == HcpWsMessageType.TEXT
        assert (
            HcpAiohttpWsClient._map_aiohttp_type(WSMsgType.BINARY)
            == HcpWsMessageType.BINARY
        )

    def test_map_close_types(self):
        """Test mapping aiohttp close-related types."""
        for close_type in [WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED]:
            assert (
                HcpAiohttpWsClient._map_aiohttp_type(close_type)
                == HcpWsMessageType.CLOSED
            )

    def test_map_error_and_control(self):
        """Test ERROR maps through and control frames are skipped."""
        assert HcpAiohttpWsClient._map_aiohttp_type(WSMsgType.ERROR) == HcpWsMessageType.ERROR
        assert HcpAiohttpWsClient._map_aiohttp_type(WSMsgType.PING) is None
