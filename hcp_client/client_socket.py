"""Connection state machine and transport adapter for one HCP session.

HcpClientSocket owns the websocket for a session. It handles:
- Connection lifecycle (DISCONNECTED → CONNECTING → PREPARING → CONNECTED)
- The hello/welcome handshake
- Decoding inbound frames and publishing them on the packet bus
- Total, idempotent teardown
"""

from __future__ import annotations

import asyncio
import logging

from .bus import HcpPacketBus, HcpSubscription, PacketFilter
from .errors import (
    HcpAlreadyStartedError,
    HcpConnectionError,
    HcpDecodeError,
    HcpHandshakeError,
    HcpTimeout,
)
from .packet import CHANNEL_META, OP_WELCOME, HcpPacket, build_hello_packet, decode_packet
from .state import HcpConnectionState, HcpStateSignal
from .transport import (
    TRANSPORT_AIOHTTP,
    TRANSPORT_WEBSOCKETS,
    HcpAiohttpWsClient,
    HcpWsClient,
    HcpWsMessageType,
)

_LOGGER = logging.getLogger(__name__)


class HcpClientSocket:
    """Single-connection session with an HCP server.

    Usage:
        sock = HcpClientSocket("ws://127.0.0.1:13997")
        sock.start()
        await sock.observe_connection_state().wait_for(HcpConnectionState.CONNECTED)
        with sock.observe_request_id(request_id) as sub:
            await sock.send(frame)
            response = await sub.next()
        await sock.stop()
    """

    def __init__(
        self,
        url: str,
        *,
        ping_interval: int | None = 20,
        open_timeout: float = 15.0,
        close_timeout: float = 2.0,
        transport: str = TRANSPORT_WEBSOCKETS,
    ) -> None:
        """Initialize socket.

        Args:
            url: WebSocket URL of the HCP server
            ping_interval: Keepalive ping interval (seconds)
            open_timeout: Connection timeout (seconds)
            close_timeout: Close handshake timeout (seconds)
            transport: WebSocket backend, "websockets" or "aiohttp"
        """
        self.url = url

        self._ping_interval = ping_interval
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._transport = transport

        self._ws: HcpWsClient | HcpAiohttpWsClient | None = None
        self._listen_task: asyncio.Task[None] | None = None
        self._state = HcpStateSignal()
        self._bus = HcpPacketBus()

    # -------------------------------------------------------------------------
    # Public API: Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Open the connection in the background.

        Must be called from a running event loop.

        Raises:
            HcpAlreadyStartedError: If a session is already active.
        """
        if self._listen_task is not None:
            raise HcpAlreadyStartedError("client already started")

        _LOGGER.info("[%s] Connecting", self.url)
        self._state.set(HcpConnectionState.CONNECTING)
        self._listen_task = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        """Tear down the session.

        Views and the DISCONNECTED state are published before the first
        suspension point. Safe to call repeatedly and before start().
        """
        task, self._listen_task = self._listen_task, None
        ws, self._ws = self._ws, None

        if task is not None or ws is not None:
            _LOGGER.info("[%s] Closing session", self.url)

        self._bus.close()
        self._state.set(HcpConnectionState.DISCONNECTED)

        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if ws is not None:
            try:
                await asyncio.wait_for(ws.close(), timeout=self._close_timeout)
            except TimeoutError:
                _LOGGER.warning("[%s] WebSocket close timed out", self.url)

    @property
    def started(self) -> bool:
        """Check if a session is active (connecting, preparing or connected)."""
        return self._listen_task is not None

    @property
    def is_connected(self) -> bool:
        """Check if the handshake has completed."""
        return self._state.value is HcpConnectionState.CONNECTED

    @property
    def connection_state(self) -> HcpConnectionState:
        """Get current connection state."""
        return self._state.value

    def observe_connection_state(self) -> HcpStateSignal:
        """Return the replay-latest connection state signal."""
        return self._state

    # -------------------------------------------------------------------------
    # Public API: Sending
    # -------------------------------------------------------------------------

    async def send(self, data: bytes | str) -> None:
        """Send a frame; a no-op when no connection is open."""
        ws = self._ws
        if ws is None:
            _LOGGER.debug("[%s] send() skipped, socket closed", self.url)
            return

        if isinstance(data, str):
            data = data.encode("utf-8")

        try:
            await ws.send_bytes(data)
        except HcpConnectionError as err:
            _LOGGER.debug("[%s] send() skipped: %s", self.url, err)

    # -------------------------------------------------------------------------
    # Public API: Views
    # -------------------------------------------------------------------------

    def subscribe(self, predicate: PacketFilter, *, name: str = "custom") -> HcpSubscription:
        """Subscribe to inbound packets matching ``predicate``."""
        return self._bus.subscribe(predicate, name=name)

    def observe_channel(self, channel: str) -> HcpSubscription:
        """Subscribe to inbound packets on ``channel``."""
        return self._bus.observe_channel(channel)

    def observe_channel_operation(self, channel: str, operation: str) -> HcpSubscription:
        """Subscribe to inbound packets addressed to ``channel``/``operation``."""
        return self._bus.observe_channel_operation(channel, operation)

    def observe_request_id(self, request_id: str) -> HcpSubscription:
        """Subscribe to inbound packets echoing ``request_id``."""
        return self._bus.observe_request_id(request_id)

    # -------------------------------------------------------------------------
    # Internal: Message Listener
    # -------------------------------------------------------------------------

    async def _listen(self) -> None:
        """Open the websocket and pump its events into the state machine."""
        ws_client = self._create_ws_client()
        try:
            await ws_client.connect(
                self.url,
                ping_interval=self._ping_interval,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
            )
        except HcpTimeout:
            _LOGGER.warning("[%s] Connection timeout - server unreachable", self.url)
            await self.stop()
            return
        except HcpHandshakeError as err:
            _LOGGER.warning("[%s] WebSocket handshake failed: %s", self.url, err)
            await self.stop()
            return
        except HcpConnectionError as err:
            _LOGGER.warning("[%s] Connection failed: %s", self.url, err)
            await self.stop()
            return

        self._ws = ws_client
        message_count = 0

        try:
            await self._on_open()

            async for msg in ws_client:
                if msg.type in (HcpWsMessageType.TEXT, HcpWsMessageType.BINARY):
                    message_count += 1
                    self._on_message(msg.data)
                elif msg.type == HcpWsMessageType.ERROR:
                    self._on_error()
                elif msg.type == HcpWsMessageType.CLOSED:
                    break

        except asyncio.CancelledError:
            _LOGGER.debug(
                "[%s] Listener cancelled (%d messages)", self.url, message_count
            )
            raise
        except Exception as err:
            _LOGGER.exception("[%s] Unexpected error: %s", self.url, err)

        self._on_close(message_count)
        await self.stop()

    def _create_ws_client(self) -> HcpWsClient | HcpAiohttpWsClient:
        if self._transport == TRANSPORT_AIOHTTP:
            return HcpAiohttpWsClient()
        return HcpWsClient()

    async def _on_open(self) -> None:
        """Handle transport open: enter PREPARING and send hello."""
        _LOGGER.debug("[%s] WebSocket open, sending hello", self.url)
        self._state.set(HcpConnectionState.PREPARING)
        await self.send(build_hello_packet())

    def _on_message(self, data: bytes | str | None) -> None:
        """Decode an inbound frame and publish it; malformed frames are dropped."""
        if data is None:
            return
        try:
            packet = decode_packet(data)
        except HcpDecodeError as err:
            _LOGGER.debug("[%s] Dropped malformed frame: %s", self.url, err)
            return

        _LOGGER.debug("[%s] Received %s", self.url, packet)
        self._handle_protocol_packet(packet)
        self._bus.publish(packet)

    def _on_error(self) -> None:
        """Transport errors are informational; only close ends the session."""
        _LOGGER.debug("[%s] WebSocket error", self.url)

    def _on_close(self, message_count: int) -> None:
        _LOGGER.info(
            "[%s] WebSocket closed by server (%d messages)", self.url, message_count
        )

    def _handle_protocol_packet(self, packet: HcpPacket) -> None:
        """Advance the handshake on welcome."""
        if not packet.is_address(CHANNEL_META, OP_WELCOME):
            return

        state = self._state.value
        if state is HcpConnectionState.PREPARING:
            self._state.set(HcpConnectionState.CONNECTED)
            _LOGGER.info("[%s] Connected", self.url)
        else:
            _LOGGER.warning(
                "[%s] Unexpected welcome, connection state invalid: %s",
                self.url,
                state.value,
            )
