#!/usr/bin/env python3
"""
🛡️ Token Guardian - keeps the bot's OAuth token valid and published

Ticks once at startup, then every interval:
  1. snapshot the shared token (lock released immediately)
  2. refresh it when remaining validity < refresh_threshold (failure is fatal)
  3. validate it; publish + persist on success, keep the previous token otherwise

Stops on Shutdown received through its own bus subscription.
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional

from core.interfaces import AuthInterface
from core.message_bus import BroadcastClosed, Lagged, Subscription
from core.message_types import Shutdown
from core.telemetry import Telemetry
from core.token_handle import TokenHandle
from twitchapi.auth_manager import describe_token_error
from twitchapi.oauth_client import RefreshError, ValidationError
from twitchapi.tokens import Credential

LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60.0
DEFAULT_REFRESH_THRESHOLD = 3600.0


class TokenGuardian:
    """
    Single writer of the TokenHandle.

    refresh_threshold must exceed interval, otherwise the token could expire
    between two ticks.
    """

    def __init__(
        self,
        auth: AuthInterface,
        tokens: TokenHandle,
        subscription: Subscription,
        credential_path: str | Path,
        telemetry: Optional[Telemetry] = None,
        interval: float = DEFAULT_INTERVAL,
        refresh_threshold: float = DEFAULT_REFRESH_THRESHOLD,
    ):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        if refresh_threshold <= interval:
            raise ValueError("refresh_threshold must be greater than interval")

        self.auth = auth
        self.tokens = tokens
        self.subscription = subscription
        self.credential_path = Path(credential_path)
        self.telemetry = telemetry or Telemetry()
        self.interval = interval
        self.refresh_threshold = refresh_threshold

        LOGGER.info(
            f"🛡️ TokenGuardian initialized - interval={interval}s, "
            f"refresh_threshold={refresh_threshold}s"
        )

    async def run(self) -> None:
        """
        Tick until Shutdown (or bus closure).

        Raises:
            RefreshError: a required refresh failed
        """
        LOGGER.info("🔄 TokenGuardian loop started")
        # first tick fires immediately, before any interval wait
        await self.tick()
        while True:
            if await self._wait_for_shutdown(self.interval):
                break
            LOGGER.info("Interval ticked, checking token")
            await self.tick()
        LOGGER.info("token_guardian loop ended")

    async def tick(self) -> bool:
        """
        One refresh/validate cycle.

        Returns:
            True if a validated token was published

        Raises:
            RefreshError: refresh required but failed
        """
        token = await self.tokens.snapshot()

        remaining = token.expires_in()
        if remaining < self.refresh_threshold:
            LOGGER.info(f"Token expires in {int(remaining)} seconds, refreshing")
            try:
                token = await self.auth.refresh(token)
            except RefreshError as e:
                LOGGER.error(f"❌ Couldn't refresh token ({describe_token_error(e)})")
                self.telemetry.capture_exception(e, "token_guardian.refresh")
                raise
            self.telemetry.incr("token_guardian.refreshed")
            LOGGER.info(f"Token refreshed, new expiration is in {int(token.expires_in())} seconds")

        try:
            token = await self.auth.validate(token)
        except ValidationError as e:
            self.telemetry.incr("token_guardian.validation_failed")
            LOGGER.warning(
                f"⚠️ Couldn't validate token ({describe_token_error(e)}): {e} "
                f"- keeping previous token, retry next tick"
            )
            return False

        LOGGER.info(f"Token still valid, expiration is in {int(token.expires_in())} seconds")
        await self.tokens.publish(token)
        self.telemetry.incr("token_guardian.validated")
        self._persist(Credential.from_token(token))
        return True

    def _persist(self, credential: Credential) -> None:
        try:
            credential.save(self.credential_path)
        except OSError as e:
            self.telemetry.capture_exception(e, "token_guardian.save")

    async def _wait_for_shutdown(self, timeout: float) -> bool:
        """
        Wait up to timeout for a Shutdown command.

        Returns:
            True if the loop must stop (Shutdown or bus closed)
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            try:
                command = await asyncio.wait_for(self.subscription.recv(), timeout=remaining)
            except asyncio.TimeoutError:
                return False
            except BroadcastClosed:
                LOGGER.warning("Broadcast channel closed")
                return True
            except Lagged as e:
                LOGGER.warning(f"⚠️ TokenGuardian subscription lagged ({e.skipped} skipped)")
                continue
            if isinstance(command, Shutdown):
                LOGGER.info("🛑 Shutdown received")
                return True
