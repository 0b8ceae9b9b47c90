"""
🔑 TokenHandle - the single shared cell holding the bot's live token

One writer (TokenGuardian), many readers (announcer, chat handler).
The lock only covers copying or replacing the value, never a network call.
"""
import asyncio
import logging

from twitchapi.tokens import LiveToken

LOGGER = logging.getLogger(__name__)


class TokenHandle:
    def __init__(self, token: LiveToken):
        self._token = token.copy()
        self._lock = asyncio.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        """Incremented on every publish"""
        return self._version

    def locked(self) -> bool:
        return self._lock.locked()

    async def snapshot(self) -> LiveToken:
        """Private copy of the current token"""
        async with self._lock:
            return self._token.copy()

    async def publish(self, token: LiveToken) -> None:
        """Replace the current token (TokenGuardian only)"""
        async with self._lock:
            self._token = token.copy()
            self._version += 1
        LOGGER.debug(f"🔑 Token published (v{self._version}): {token!r}")

    def peek(self) -> LiveToken:
        """Lock-free copy for logging/stats"""
        return self._token.copy()
