"""Connection lifecycle states and the replay-latest state signal."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from enum import Enum

_LOGGER = logging.getLogger(__name__)


class HcpConnectionState(Enum):
    """Connection lifecycle states."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    PREPARING = "PREPARING"
    CONNECTED = "CONNECTED"


StateListener = Callable[[HcpConnectionState], None]


class HcpStateSignal:
    """Current-value cell with a listener registry.

    New listeners receive the current state immediately, then every change.
    Assigning the state it already holds does not notify.
    """

    def __init__(
        self, initial: HcpConnectionState = HcpConnectionState.DISCONNECTED
    ) -> None:
        self._value = initial
        self._listeners: list[StateListener] = []

    @property
    def value(self) -> HcpConnectionState:
        """Get current state."""
        return self._value

    def set(self, state: HcpConnectionState) -> None:
        """Update the state and notify listeners in registration order."""
        if state is self._value:
            return
        _LOGGER.debug("State: %s → %s", self._value.value, state.value)
        self._value = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as err:
                _LOGGER.exception("State listener error: %s", err)

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener and replay the current state to it.

        An exception raised by the replay propagates and the listener is
        not registered.

        Returns:
            Callable that removes the listener; safe to call repeatedly.
        """
        listener(self._value)
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def wait_for(
        self, state: HcpConnectionState, timeout: float | None = None
    ) -> None:
        """Wait until the signal holds ``state``.

        Raises:
            TimeoutError: If ``timeout`` elapses first.
        """
        loop = asyncio.get_running_loop()
        reached: asyncio.Future[None] = loop.create_future()

        def on_state(current: HcpConnectionState) -> None:
            if current is state and not reached.done():
                reached.set_result(None)

        remove = self.add_listener(on_state)
        try:
            await asyncio.wait_for(reached, timeout)
        finally:
            remove()

    async def observe(self) -> AsyncIterator[HcpConnectionState]:
        """Yield the current state, then each subsequent change."""
        queue: asyncio.Queue[HcpConnectionState] = asyncio.Queue()
        remove = self.add_listener(queue.put_nowait)
        try:
            while True:
                yield await queue.get()
        finally:
            remove()
