"""
Command router for the donation bot.

Consumes the CommandBus and dispatches each command to its handler before
polling for the next one. A slow handler only throttles this consumer.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Optional, Type

from core.message_bus import BroadcastClosed, Empty, Lagged, Subscription
from core.message_types import (
    Command,
    DonationReceived,
    RaidInitiated,
    Shutdown,
    StreamEnded,
    StreamStarted,
)
from core.telemetry import Telemetry

if TYPE_CHECKING:
    from core.donation_announcer import DonationAnnouncer

logger = logging.getLogger(__name__)

CommandHandler = Callable[[Command], Awaitable[None]]


class CommandRouter:
    """
    Broadcast consumer.

    Receive outcomes:
    1. command -> handler, awaited before the next poll
    2. empty -> sleep poll_interval
    3. closed -> loop ends (normal shutdown)
    4. lagged -> loop ends after a warning (consumer out of sync)
    """

    def __init__(
        self,
        subscription: Subscription,
        announcer: Optional["DonationAnnouncer"] = None,
        telemetry: Optional[Telemetry] = None,
        poll_interval: float = 0.1,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self.subscription = subscription
        self.announcer = announcer
        self.telemetry = telemetry or Telemetry()
        self.poll_interval = poll_interval
        self.handlers: Dict[Type, CommandHandler] = {
            DonationReceived: self._on_donation,
            RaidInitiated: self._on_reserved,
            StreamStarted: self._on_reserved,
            StreamEnded: self._on_reserved,
        }

    def register(self, command_type: Type, handler: CommandHandler) -> None:
        """
        Bind (or replace) the handler for a command type.

        Args:
            command_type: One of the Command dataclasses (not Shutdown)
            handler: Async callable taking the command
        """
        if command_type is Shutdown:
            raise ValueError("Shutdown is handled by the router loop itself")
        self.handlers[command_type] = handler
        logger.info(f"Registered handler for {command_type.__name__}")

    async def run(self) -> None:
        """Poll the subscription until Shutdown, closure or lag"""
        logger.info(f"📨 CommandRouter loop started (poll={self.poll_interval}s)")
        while True:
            try:
                command = self.subscription.try_recv()
            except Empty:
                await asyncio.sleep(self.poll_interval)
                continue
            except BroadcastClosed:
                logger.warning("Broadcast channel closed")
                break
            except Lagged as e:
                logger.warning(f"Broadcast channel lagged ({e.skipped} skipped), stopping router")
                self.telemetry.incr("command_router.lagged")
                break

            if isinstance(command, Shutdown):
                logger.info("🛑 Shutdown received")
                break

            await self.dispatch(command)
        logger.info("broadcast_handler loop ended")

    async def dispatch(self, command: Command) -> None:
        """Run the handler bound to the command type (errors are logged, not raised)"""
        handler = self.handlers.get(type(command))
        if handler is None:
            logger.warning(f"No handler for command: {type(command).__name__}")
            return

        self.telemetry.incr(f"command_router.{type(command).__name__}")
        try:
            await handler(command)
        except Exception as e:
            self.telemetry.capture_exception(e, f"command_router.{type(command).__name__}")

    async def _on_donation(self, command: DonationReceived) -> None:
        logger.info(f"Donation received: {command.donation}")
        if self.announcer is None:
            logger.warning("No announcer configured, donation not announced")
            return
        await self.announcer.announce(command.donation)

    async def _on_reserved(self, command: Command) -> None:
        # Raid / stream lifecycle: accepted, no behavior yet
        logger.debug(f"Command accepted without action: {command}")
