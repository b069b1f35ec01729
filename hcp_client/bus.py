"""Fan-out of inbound packets to filtered live subscriptions.

The bus is a broadcast, not a queue: a subscription only sees packets
published while it is attached. Every subscription owns its own buffer, so
slow consumers never affect each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .packet import HcpPacket

_LOGGER = logging.getLogger(__name__)

PacketFilter = Callable[[HcpPacket], bool]

_CLOSED = object()


class HcpSubscription:
    """Live, filtered view over the inbound packet sequence.

    Usage:
        with bus.observe_channel("hw") as sub:
            async for packet in sub:
                ...
    """

    def __init__(self, bus: HcpPacketBus, predicate: PacketFilter, name: str) -> None:
        self._bus = bus
        self._predicate = predicate
        self.name = name
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Return True once the subscription no longer receives packets."""
        return self._closed

    def _offer(self, packet: HcpPacket) -> None:
        if self._closed:
            return
        try:
            matched = self._predicate(packet)
        except Exception as err:
            _LOGGER.exception("Filter error in %s: %s", self.name, err)
            return
        if matched:
            self._queue.put_nowait(packet)

    def _terminate(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def cancel(self) -> None:
        """Detach from the bus; pending iteration finishes."""
        self._bus._detach(self)
        self._terminate()

    async def next(self) -> HcpPacket | None:
        """Wait for the next matching packet.

        Returns:
            The packet, or None once the subscription has ended.
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so later waiters also see the end.
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self) -> HcpSubscription:
        return self

    async def __anext__(self) -> HcpPacket:
        packet = await self.next()
        if packet is None:
            raise StopAsyncIteration
        return packet

    def __enter__(self) -> HcpSubscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()

    async def __aenter__(self) -> HcpSubscription:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.cancel()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<HcpSubscription {self.name} {state}>"


class HcpPacketBus:
    """Single fan-in point for decoded packets, fanning out to subscriptions."""

    def __init__(self) -> None:
        self._subscriptions: list[HcpSubscription] = []

    @property
    def subscription_count(self) -> int:
        """Number of attached subscriptions."""
        return len(self._subscriptions)

    def publish(self, packet: HcpPacket) -> None:
        """Deliver a packet to every attached subscription that matches it."""
        for subscription in list(self._subscriptions):
            subscription._offer(packet)

    def subscribe(self, predicate: PacketFilter, *, name: str = "custom") -> HcpSubscription:
        """Attach a subscription receiving packets that satisfy ``predicate``."""
        subscription = HcpSubscription(self, predicate, name)
        self._subscriptions.append(subscription)
        return subscription

    def observe_channel(self, channel: str) -> HcpSubscription:
        """Subscribe to all packets on ``channel``."""
        return self.subscribe(
            lambda packet: packet.channel == channel,
            name=f"channel={channel}",
        )

    def observe_channel_operation(self, channel: str, operation: str) -> HcpSubscription:
        """Subscribe to packets addressed to ``channel``/``operation``."""
        return self.subscribe(
            lambda packet: packet.is_address(channel, operation),
            name=f"address={channel},{operation}",
        )

    def observe_request_id(self, request_id: str) -> HcpSubscription:
        """Subscribe to packets whose header echoes ``request_id``."""
        return self.subscribe(
            lambda packet: packet.request_id == request_id,
            name=f"requestId={request_id}",
        )

    def close(self) -> None:
        """End every attached subscription.

        The bus stays usable; subscriptions created afterwards receive
        packets from the next session.
        """
        subscriptions, self._subscriptions = self._subscriptions, []
        if subscriptions:
            _LOGGER.debug("Closing %d subscriptions", len(subscriptions))
        for subscription in subscriptions:
            subscription._terminate()

    def _detach(self, subscription: HcpSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
