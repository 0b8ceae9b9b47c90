"""
Chat event handler.

Turns inbound chat events into a log line or a chat command invocation.
Commands are looked up in a registry filled at startup; nothing is bound
by default, unknown names only get logged.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from core.message_bus import BroadcastClosed, Empty, Lagged, Subscription
from core.message_types import CHAT_MESSAGE, CHAT_NOTIFICATION, ChatEvent, Shutdown
from core.telemetry import Telemetry
from core.token_handle import TokenHandle
from twitchapi.tokens import LiveToken

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "!"


@dataclass
class CommandContext:
    """Context passed to chat command handlers"""
    event: ChatEvent            # Original event
    command_name: str           # Command name (without !)
    raw_args: Optional[str]     # Trailing text after the command name
    token: LiveToken            # Borrowed bot token

    def __repr__(self) -> str:
        return f"CommandContext(cmd={self.command_name}, user={self.event.chatter_login})"


ChatCommandHandler = Callable[[CommandContext], Awaitable[None]]


def parse_command(text: str) -> Optional[tuple[str, Optional[str]]]:
    """
    Split "!name trailing text" into (name, trailing).

    Returns:
        None when the text is not a command
    """
    if not text.startswith(COMMAND_PREFIX):
        return None
    parts = text[len(COMMAND_PREFIX):].split(maxsplit=1)
    if not parts:
        return None
    return parts[0], (parts[1] if len(parts) > 1 else None)


class ChatCommandRegistry:
    """Mapping command name -> handler, with a logging fallback"""

    def __init__(self, default: Optional[ChatCommandHandler] = None):
        self._commands: Dict[str, ChatCommandHandler] = {}
        self._default = default or self._log_unknown

    def register(self, name: str, handler: ChatCommandHandler) -> None:
        self._commands[name.lower()] = handler
        logger.info(f"Registered chat command: !{name.lower()}")

    def unregister(self, name: str) -> None:
        self._commands.pop(name.lower(), None)

    def names(self) -> list[str]:
        return sorted(self._commands)

    async def dispatch(self, ctx: CommandContext) -> None:
        handler = self._commands.get(ctx.command_name.lower(), self._default)
        await handler(ctx)

    @staticmethod
    async def _log_unknown(ctx: CommandContext) -> None:
        logger.info(f"Command: {ctx.command_name}")


class ChatEventHandler:
    """
    Consumes ChatEvents fed by the transport.

    run() alternates between checking its bus subscription for Shutdown and
    handling one queued event, sleeping poll_interval when idle.
    """

    def __init__(
        self,
        tokens: TokenHandle,
        subscription: Subscription,
        registry: Optional[ChatCommandRegistry] = None,
        telemetry: Optional[Telemetry] = None,
        poll_interval: float = 0.1,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        self.tokens = tokens
        self.subscription = subscription
        self.registry = registry or ChatCommandRegistry()
        self.telemetry = telemetry or Telemetry()
        self.poll_interval = poll_interval
        self._inbound: asyncio.Queue[ChatEvent] = asyncio.Queue()

    def feed(self, event: ChatEvent) -> None:
        """Enqueue an event (call from the event loop thread)"""
        self._inbound.put_nowait(event)

    @property
    def pending(self) -> int:
        return self._inbound.qsize()

    async def handle_event(self, event: ChatEvent) -> None:
        """Log the event, and dispatch it when it is a chat command"""
        if event.kind == CHAT_MESSAGE:
            logger.info(f"[{event.timestamp:.0f}] #{event.channel_login} {event.chatter_login}: {event.text}")
            parsed = parse_command(event.text)
            if parsed is None:
                return
            name, rest = parsed
            token = await self.tokens.snapshot()
            self.telemetry.incr("chat.commands")
            try:
                await self.registry.dispatch(CommandContext(event=event, command_name=name, raw_args=rest, token=token))
            except Exception as e:
                self.telemetry.capture_exception(e, f"chat.command.{name}")
        elif event.kind == CHAT_NOTIFICATION:
            logger.info(
                f"[{event.timestamp:.0f}] #{event.channel_login} {event.chatter_login or 'anonymous'}: {event.text}"
            )
        else:
            logger.debug(f"Ignored chat event kind: {event.kind}")

    async def run(self) -> None:
        """Handle queued events until Shutdown or bus closure"""
        logger.info("💬 ChatEventHandler loop started")
        while True:
            if self._should_stop():
                break
            try:
                event = self._inbound.get_nowait()
            except asyncio.QueueEmpty:
                await asyncio.sleep(self.poll_interval)
                continue
            await self.handle_event(event)
        logger.info("chat_event_handler loop ended")

    def _should_stop(self) -> bool:
        while True:
            try:
                command = self.subscription.try_recv()
            except Empty:
                return False
            except BroadcastClosed:
                logger.warning("Broadcast channel closed")
                return True
            except Lagged as e:
                # Only Shutdown matters here, keep draining
                logger.warning(f"⚠️ ChatEventHandler subscription lagged ({e.skipped} skipped)")
                continue
            if isinstance(command, Shutdown):
                logger.info("🛑 Shutdown received")
                return True
