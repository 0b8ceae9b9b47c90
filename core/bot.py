"""
🤖 Bot - runs the long-lived loops side by side

Token Guardian, Command Router and (optionally) the Chat Event Handler run
concurrently until each one has seen Shutdown. The first loop failure
triggers a Shutdown publish so the siblings stop, then it is re-raised.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Dict, Optional

from core.chat_event_handler import ChatEventHandler
from core.command_router import CommandRouter
from core.message_bus import BroadcastClosed, CommandBus
from core.message_types import Shutdown
from core.token_guardian import TokenGuardian

if TYPE_CHECKING:
    from twitchapi.transports.eventsub_chat_client import EventSubChatTransport

LOGGER = logging.getLogger(__name__)


class Bot:
    def __init__(
        self,
        bus: CommandBus,
        guardian: TokenGuardian,
        router: CommandRouter,
        chat_handler: Optional[ChatEventHandler] = None,
        transport: Optional["EventSubChatTransport"] = None,
    ):
        self.bus = bus
        self.guardian = guardian
        self.router = router
        self.chat_handler = chat_handler
        self.transport = transport

    def request_shutdown(self) -> int:
        """
        Publish Shutdown to every loop.

        Returns:
            Number of subscriptions reached (0 if the bus is already closed)
        """
        try:
            reached = self.bus.publish(Shutdown())
        except BroadcastClosed:
            LOGGER.debug("Shutdown requested but bus already closed")
            return 0
        LOGGER.info(f"🛑 Shutdown published to {reached} loops")
        return reached

    async def run(self) -> None:
        """
        Raises:
            Exception: the first loop failure (e.g. RefreshError from the guardian)
        """
        if self.transport is not None:
            await self.transport.start(await self.guardian.tokens.snapshot())

        loops = {
            "token_guardian": self.guardian.run(),
            "command_router": self.router.run(),
        }
        if self.chat_handler is not None:
            loops["chat_event_handler"] = self.chat_handler.run()

        tasks: Dict[asyncio.Task, str] = {
            asyncio.create_task(coro, name=name): name for name, coro in loops.items()
        }
        LOGGER.info(f"🚀 Bot running: {', '.join(loops)}")

        first_error: Optional[BaseException] = None
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task.cancelled():
                        continue
                    error = task.exception()
                    if error is None:
                        LOGGER.info(f"✅ {tasks[task]} finished")
                    elif first_error is None:
                        first_error = error
                        LOGGER.error(f"❌ {tasks[task]} failed: {error!r}, shutting down")
                        self.request_shutdown()
        finally:
            for task in pending:
                task.cancel()
            if self.transport is not None:
                await self.transport.stop()

        if first_error is not None:
            raise first_error
        LOGGER.info("👋 Bot stopped")
