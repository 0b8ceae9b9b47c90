"""
🚌 CommandBus - Multi-consumer broadcast of internal commands

Every subscriber owns a bounded buffer fed by a single fan-out publish.
A subscriber that falls behind loses its oldest entries and is told so
(Lagged) on its next receive instead of silently skipping commands.
"""
import asyncio
import logging
from collections import deque
from typing import Deque, List

from core.message_types import Command

LOGGER = logging.getLogger(__name__)


class Empty(Exception):
    """No command currently buffered (non-blocking receive)"""


class BroadcastClosed(Exception):
    """The bus was closed and this subscription is drained"""


class Lagged(Exception):
    """The subscription overflowed and dropped its oldest commands"""

    def __init__(self, skipped: int):
        super().__init__(f"subscription lagged, {skipped} command(s) skipped")
        self.skipped = skipped


class Subscription:
    """Receiving end owned by a single consumer"""

    def __init__(self, bus: "CommandBus", name: str = ""):
        self._bus = bus
        self.name = name
        self._buffer: Deque[Command] = deque()
        self._skipped = 0
        self._closed = False
        self._ready = asyncio.Event()

    def _push(self, command: Command) -> None:
        if len(self._buffer) >= self._bus.capacity:
            self._buffer.popleft()
            self._skipped += 1
        self._buffer.append(command)
        self._ready.set()

    def _close(self) -> None:
        self._closed = True
        self._ready.set()

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def try_recv(self) -> Command:
        """
        Receive without waiting.

        Raises:
            Lagged: commands were dropped since the last receive (reported once)
            Empty: nothing buffered yet
            BroadcastClosed: bus closed and buffer drained
        """
        if self._skipped:
            skipped, self._skipped = self._skipped, 0
            raise Lagged(skipped)
        if self._buffer:
            return self._buffer.popleft()
        if self._closed:
            raise BroadcastClosed()
        raise Empty()

    async def recv(self) -> Command:
        """Wait for the next command (same errors as try_recv, minus Empty)"""
        while True:
            try:
                return self.try_recv()
            except Empty:
                self._ready.clear()
                await self._ready.wait()

    def resubscribe(self, name: str = "") -> "Subscription":
        """New subscription on the same bus, starting from the next publish"""
        return self._bus.subscribe(name or self.name)

    def close(self) -> None:
        """Detach from the bus, remaining buffered commands are dropped"""
        self._bus._detach(self)
        self._buffer.clear()
        self._close()


class CommandBus:
    """Broadcast channel: each publish reaches every live subscription"""

    def __init__(self, capacity: int = 8):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._subscriptions: List[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, name: str = "") -> Subscription:
        """
        Register a new consumer.

        Args:
            name: Label used in logs ("token_guardian", "command_router", ...)
        """
        subscription = Subscription(self, name)
        if self._closed:
            subscription._close()
        else:
            self._subscriptions.append(subscription)
            LOGGER.debug(f"📌 Subscription added: {name or '<anonymous>'}")
        return subscription

    def publish(self, command: Command) -> int:
        """
        Fan a command out to every subscription.

        Returns:
            Number of subscriptions that received it
        """
        if self._closed:
            raise BroadcastClosed()
        if not self._subscriptions:
            LOGGER.debug(f"⚠️ CommandBus: no subscriber for {type(command).__name__}")
            return 0
        for subscription in self._subscriptions:
            subscription._push(command)
        LOGGER.debug(f"📤 CommandBus: {type(command).__name__} -> {len(self._subscriptions)} subscribers")
        return len(self._subscriptions)

    def close(self) -> None:
        """Close the bus; subscribers drain their buffers then see BroadcastClosed"""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscriptions:
            subscription._close()
        self._subscriptions.clear()
        LOGGER.info("🛑 CommandBus closed")

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def get_stats(self) -> dict:
        """Return bus stats"""
        return {
            "subscribers": len(self._subscriptions),
            "capacity": self.capacity,
            "pending": sum(s.pending for s in self._subscriptions),
        }
