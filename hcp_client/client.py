"""Request/response coordinator for HCP servers.

This module provides the public API applications use to talk to an HCP
server: connection lifecycle, correlated hardware and meta requests, and
standing notification streams.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any
from uuid import uuid4

from .bus import HcpSubscription
from .client_socket import HcpClientSocket
from .config import HcpClientConfig
from .errors import HcpAlreadyStartedError, HcpConnectionError, HcpTimeout
from .packet import (
    CHANNEL_HW,
    HcpPacket,
    build_hw_control_packet,
    build_meta_cmd_packet,
    parse_hw_command,
    parse_meta_command,
)
from .state import HcpConnectionState, HcpStateSignal

_LOGGER = logging.getLogger(__name__)

_request_seq = itertools.count(1)


def next_request_id() -> str:
    """Generate a request id unique for the process lifetime."""
    return f"{uuid4().hex[:12]}-{next(_request_seq)}"


class HcpClient:
    """High-level client for an HCP hardware-control server.

    Usage:
        client = HcpClient("ws://127.0.0.1:13997")
        client.connect()
        await client.wait_for_connected()
        response = await client.request_hw_control("wiseXboard.digitalRead", 1)
        with client.observe_hw_notifications() as notifications:
            async for packet in notifications:
                ...
        await client.close()
    """

    def __init__(self, config: HcpClientConfig | str, **overrides: Any) -> None:
        """Initialize client.

        Args:
            config: Client configuration, or the server URL
            **overrides: Config fields overriding ``config``
        """
        if isinstance(config, str):
            config = HcpClientConfig(url=config, **overrides)
        elif overrides:
            config = dataclasses.replace(config, **overrides)

        self.config = config
        self._sock = HcpClientSocket(
            config.url,
            ping_interval=config.ping_interval,
            open_timeout=config.open_timeout,
            close_timeout=config.close_timeout,
            transport=config.transport,
        )
        self._pending: dict[str, HcpSubscription] = {}
        self._cancel_task: asyncio.Task[None] | None = None
        self._remove_state_listener: Callable[[], None] | None = None

    # -------------------------------------------------------------------------
    # Public API: Connection Management
    # -------------------------------------------------------------------------

    def connect(self, cancel: asyncio.Event | None = None) -> None:
        """Start the session; the handshake completes in the background.

        Args:
            cancel: Optional event that closes the client once set.

        Raises:
            HcpAlreadyStartedError: If a session is already active.
        """
        if self._sock.started:
            raise HcpAlreadyStartedError("client already started")

        # A session the server ended still holds the previous hooks.
        self._release_session_hooks()

        self._sock.start()
        self._remove_state_listener = self.observe_connection_state().add_listener(
            self._on_connection_state
        )
        if cancel is not None:
            self._cancel_task = asyncio.create_task(self._close_on_cancel(cancel))

    async def close(self) -> None:
        """Close the session and release listeners."""
        _LOGGER.debug("[%s] HcpClient.close()", self.config.url)
        self._release_session_hooks()
        await self._sock.stop()

    async def wait_for_connected(self, timeout: float | None = None) -> None:
        """Wait until the handshake completes.

        Returns immediately when already connected.

        Raises:
            HcpTimeout: If ``timeout`` elapses first.
        """
        try:
            await self.observe_connection_state().wait_for(
                HcpConnectionState.CONNECTED, timeout
            )
        except TimeoutError as err:
            raise HcpTimeout("Timed out waiting for connection") from err

    @property
    def is_connected(self) -> bool:
        """Check if the session is connected."""
        return self._sock.is_connected

    @property
    def connection_state(self) -> HcpConnectionState:
        """Get current connection state."""
        return self._sock.connection_state

    @property
    def client_type(self) -> str:
        """Kind of client application this session belongs to."""
        return self.config.client_type

    @property
    def pending_count(self) -> int:
        """Number of requests awaiting a response."""
        return len(self._pending)

    def observe_connection_state(self) -> HcpStateSignal:
        """Return the replay-latest connection state signal."""
        return self._sock.observe_connection_state()

    # -------------------------------------------------------------------------
    # Public API: Requests
    # -------------------------------------------------------------------------

    async def request_hw_control(
        self,
        command: str | Mapping[str, Any],
        *args: Any,
        timeout: float | None = None,
    ) -> HcpPacket:
        """Send a hardware control request and wait for its response.

        Args:
            command: "<hwId>.<cmd>" or a mapping form (see parse_hw_command)
            *args: Command arguments for the dotted-string form
            timeout: Per-call override of the request timeout (seconds)

        Returns:
            The first packet echoing the request id.

        Raises:
            HcpInvalidCommandError: Before sending, if the command is malformed.
            HcpTimeout: If no response arrives in time.
        """
        hw_command = parse_hw_command(command, args)
        request_id = next_request_id()
        frame = build_hw_control_packet(
            hw_id=hw_command.hw_id,
            cmd=hw_command.cmd,
            args=hw_command.args,
            request_id=request_id,
        )
        return await self._request(request_id, frame, timeout)

    async def request_meta_cmd(
        self,
        command: str | Mapping[str, Any],
        *args: Any,
        timeout: float | None = None,
    ) -> HcpPacket:
        """Send a meta command request and wait for its response.

        Raises:
            HcpInvalidCommandError: Before sending, if the command is empty.
            HcpTimeout: If no response arrives in time.
        """
        meta_command = parse_meta_command(command, args)
        request_id = next_request_id()
        frame = build_meta_cmd_packet(
            cmd=meta_command.cmd,
            args=meta_command.args,
            request_id=request_id,
        )
        return await self._request(request_id, frame, timeout)

    async def run_batch(
        self, commands: Iterable[str | Mapping[str, Any]]
    ) -> list[HcpPacket]:
        """Run hardware commands one after another.

        Returns:
            Responses in command order. The first failure propagates.
        """
        responses: list[HcpPacket] = []
        for command in commands:
            responses.append(await self.request_hw_control(command))
        return responses

    # -------------------------------------------------------------------------
    # Public API: Notifications
    # -------------------------------------------------------------------------

    def observe_notifications(self, channel: str) -> HcpSubscription:
        """Subscribe to every packet on ``channel`` until cancelled or closed."""
        return self._sock.observe_channel(channel)

    def observe_hw_notifications(self) -> HcpSubscription:
        """Subscribe to the hardware channel (e.g. "firmata-value" events)."""
        return self.observe_notifications(CHANNEL_HW)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    async def _request(
        self, request_id: str, frame: bytes, timeout: float | None
    ) -> HcpPacket:
        """Send ``frame`` and race its response against the deadline."""
        deadline = self.config.request_timeout if timeout is None else timeout

        # Attach before sending so a fast response cannot be missed.
        subscription = self._sock.observe_request_id(request_id)
        self._pending[request_id] = subscription
        try:
            await self._sock.send(frame)
            return await asyncio.wait_for(self._await_response(subscription), deadline)
        except TimeoutError as err:
            _LOGGER.debug("[%s] Request %s timed out", self.config.url, request_id)
            raise HcpTimeout(
                f"Request {request_id} timed out after {deadline}s"
            ) from err
        finally:
            subscription.cancel()
            self._pending.pop(request_id, None)

    async def _await_response(self, subscription: HcpSubscription) -> HcpPacket:
        packet = await subscription.next()
        if packet is not None:
            return packet

        # The view ended with its connection.
        if self.config.fail_pending_on_close:
            raise HcpConnectionError("Connection closed before response")
        never: asyncio.Future[HcpPacket] = asyncio.get_running_loop().create_future()
        return await never

    def _release_session_hooks(self) -> None:
        task, self._cancel_task = self._cancel_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        remove, self._remove_state_listener = self._remove_state_listener, None
        if remove is not None:
            remove()

    async def _close_on_cancel(self, cancel: asyncio.Event) -> None:
        await cancel.wait()
        _LOGGER.debug("[%s] Cancel requested", self.config.url)
        await self.close()

    def _on_connection_state(self, state: HcpConnectionState) -> None:
        _LOGGER.debug("[%s] Connection state: %s", self.config.url, state.value)
