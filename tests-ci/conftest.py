"""
Pytest configuration for CI tests
Provides common fixtures and fakes (no network, no real Twitch account)
"""
import asyncio
import time
from typing import Dict, List, Optional, Set

import pytest

from core.interfaces import AuthInterface, ChannelStatus, ChatInterface
from core.message_bus import CommandBus
from core.telemetry import Telemetry
from core.token_handle import TokenHandle
from twitchapi.channels import Channel, ChannelSet
from twitchapi.oauth_client import TokenInvalid
from twitchapi.tokens import LiveToken


def make_token(access_token="access-1", expires_in=14400.0, refresh_token="refresh-1", **kwargs):
    """LiveToken expiring expires_in seconds from now"""
    return LiveToken(
        access_token=access_token,
        refresh_token=refresh_token,
        user_id=kwargs.pop("user_id", "999"),
        login=kwargs.pop("login", "donation_bot"),
        scopes=kwargs.pop("scopes", ["user:write:chat"]),
        expires_at=time.time() + expires_in,
        **kwargs,
    )


class FakeChat(ChatInterface):
    """
    In-memory chat API.

    live: channel IDs reported live
    moderated: channels returned by get_moderated_channels
    fail: {(kind, channel_id)} sends that raise
    """

    def __init__(
        self,
        live: Optional[List[str]] = None,
        moderated: Optional[List[Channel]] = None,
        fail: Optional[Set[tuple]] = None,
        tokens: Optional[TokenHandle] = None,
    ):
        self.live = list(live or [])
        self.moderated = list(moderated or [])
        self.fail = set(fail or ())
        self.tokens = tokens
        self.sent: List[tuple] = []
        self.calls: List[str] = []
        self.lock_held_during_call: List[bool] = []
        self.lookup_gate: Optional[asyncio.Event] = None
        self.lookups_in_flight = 0
        self.max_lookups_in_flight = 0
        self.live_error: Optional[Exception] = None
        self.moderated_error: Optional[Exception] = None
        self.send_delay = 0.0

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if self.tokens is not None:
            self.lock_held_during_call.append(self.tokens.locked())

    async def _lookup(self) -> None:
        self.lookups_in_flight += 1
        self.max_lookups_in_flight = max(self.max_lookups_in_flight, self.lookups_in_flight)
        try:
            if self.lookup_gate is not None:
                await self.lookup_gate.wait()
            else:
                await asyncio.sleep(0)
        finally:
            self.lookups_in_flight -= 1

    async def get_live_streams(self, token, channel_ids):
        self._enter("get_live_streams")
        await self._lookup()
        if self.live_error:
            raise self.live_error
        return [ChannelStatus(channel_id=cid, login=f"login_{cid}", is_live=True) for cid in channel_ids if cid in self.live]

    async def get_moderated_channels(self, token, user_id):
        self._enter("get_moderated_channels")
        await self._lookup()
        if self.moderated_error:
            raise self.moderated_error
        return list(self.moderated)

    async def _send(self, kind, channel, text):
        self._enter(kind)
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if (kind, channel.channel_id) in self.fail:
            raise RuntimeError(f"{kind} rejected in {channel.display_name}")
        self.sent.append((kind, channel.channel_id, text))

    async def send_chat_message(self, token, channel, text):
        await self._send("message", channel, text)

    async def send_announcement(self, token, channel, text, color):
        await self._send("announcement", channel, f"{text}|{color}")


class FakeAuth(AuthInterface):
    """Scripted OAuth endpoints recording call order"""

    def __init__(self, tokens: Optional[TokenHandle] = None):
        self.tokens = tokens
        self.calls: List[str] = []
        self.lock_held_during_call: List[bool] = []
        self.refresh_error: Optional[Exception] = None
        self.validate_error: Optional[Exception] = None
        self.refreshed_expires_in = 14400.0
        self.refresh_count = 0

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if self.tokens is not None:
            self.lock_held_during_call.append(self.tokens.locked())

    async def refresh(self, token):
        self._enter("refresh")
        await asyncio.sleep(0)
        if self.refresh_error:
            raise self.refresh_error
        self.refresh_count += 1
        return make_token(
            access_token=f"access-refreshed-{self.refresh_count}",
            refresh_token=token.refresh_token,
            expires_in=self.refreshed_expires_in,
            user_id=token.user_id,
            login=token.login,
        )

    async def validate(self, token):
        self._enter("validate")
        await asyncio.sleep(0)
        if self.validate_error:
            raise self.validate_error
        return token


@pytest.fixture
def bus():
    return CommandBus(capacity=8)


@pytest.fixture
def telemetry():
    return Telemetry()


@pytest.fixture
def token_handle():
    return TokenHandle(make_token())


@pytest.fixture
def channels():
    return ChannelSet([
        Channel("1", "alpha"),
        Channel("2", "bravo"),
        Channel("3", "charlie"),
    ])


@pytest.fixture
def invalid_token_error():
    return TokenInvalid("access token expired or revoked (401)")


@pytest.fixture
def tiltify_payload() -> Dict:
    return {
        "data": {
            "id": "d-1",
            "amount": {"currency": "USD", "value": "25.00"},
            "donor_name": "Alex",
            "donor_comment": "Good luck!",
        },
        "meta": {"event_type": "public:direct:donation_updated"},
    }
