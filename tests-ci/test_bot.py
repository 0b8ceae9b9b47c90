"""
Tests d'intégration du Bot (guardian + router + chat handler sur un même bus)
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from core.bot import Bot
from core.chat_event_handler import ChatEventHandler
from core.command_router import CommandRouter
from core.donation_announcer import DonationAnnouncer
from core.message_bus import CommandBus
from core.message_types import DonationReceived
from core.token_guardian import TokenGuardian
from core.token_handle import TokenHandle
from tiltify.donation import Donation
from tiltify.intake import DonationIntake
from twitchapi.channels import Channel, ChannelSet
from twitchapi.oauth_client import RefreshUnauthorized

from conftest import FakeAuth, FakeChat, make_token


def build_bot(tmp_path, token=None, chat=None, with_chat_handler=True, transport=None, **guardian_kwargs):
    bus = CommandBus()
    tokens = TokenHandle(token or make_token())
    auth = FakeAuth(tokens=tokens)
    guardian = TokenGuardian(auth, tokens, bus.subscribe("token_guardian"), tmp_path / "bot.json", **guardian_kwargs)
    chat = chat or FakeChat(live=["1"], moderated=[Channel("1", "alpha")], tokens=tokens)
    announcer = DonationAnnouncer(chat, ChannelSet([Channel("1", "alpha")]), tokens)
    router = CommandRouter(bus.subscribe("command_router"), announcer=announcer, poll_interval=0.01)
    handler = ChatEventHandler(tokens, bus.subscribe("chat_event_handler"), poll_interval=0.01) if with_chat_handler else None
    bot = Bot(bus, guardian, router, chat_handler=handler, transport=transport)
    return bot, bus, auth, chat


@pytest.mark.integration
class TestBot:
    @pytest.mark.asyncio
    async def test_shutdown_stops_every_loop(self, tmp_path):
        bot, _, _, _ = build_bot(tmp_path)
        task = asyncio.create_task(bot.run())
        await asyncio.sleep(0.02)

        assert bot.request_shutdown() == 3

        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_donation_announced_end_to_end(self, tmp_path, tiltify_payload):
        bot, bus, _, chat = build_bot(tmp_path)
        intake = DonationIntake(bus)
        task = asyncio.create_task(bot.run())

        await intake.receive(tiltify_payload)
        await asyncio.sleep(0.1)
        bot.request_shutdown()
        await asyncio.wait_for(task, timeout=1.0)

        assert [kind for kind, _, _ in chat.sent] == ["message", "announcement"]
        assert chat.sent[1][2].startswith("A donation of $25.00 has been made by Alex!")

    @pytest.mark.asyncio
    async def test_guardian_failure_shuts_down_siblings_and_propagates(self, tmp_path):
        bot, _, auth, _ = build_bot(
            tmp_path, token=make_token(expires_in=0.5), interval=0.01, refresh_threshold=1.0
        )
        auth.refresh_error = RefreshUnauthorized("400")

        with pytest.raises(RefreshUnauthorized):
            await asyncio.wait_for(bot.run(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_transport_started_and_stopped(self, tmp_path):
        transport = AsyncMock()
        bot, _, _, _ = build_bot(tmp_path, transport=transport)
        task = asyncio.create_task(bot.run())
        await asyncio.sleep(0.02)

        transport.start.assert_awaited_once()
        assert transport.start.await_args.args[0].access_token == "access-1"

        bot.request_shutdown()
        await asyncio.wait_for(task, timeout=1.0)
        transport.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_runs_without_chat_handler(self, tmp_path):
        bot, bus, _, _ = build_bot(tmp_path, with_chat_handler=False)
        task = asyncio.create_task(bot.run())
        await asyncio.sleep(0.02)

        assert bot.request_shutdown() == 2
        await asyncio.wait_for(task, timeout=1.0)

    def test_request_shutdown_on_closed_bus(self, tmp_path):
        bot, bus, _, _ = build_bot(tmp_path)
        bus.close()
        assert bot.request_shutdown() == 0

    @pytest.mark.asyncio
    async def test_router_keeps_working_while_guardian_ticks(self, tmp_path):
        bot, bus, auth, chat = build_bot(tmp_path, interval=0.02, refresh_threshold=1.0)
        task = asyncio.create_task(bot.run())
        await asyncio.sleep(0.05)

        bus.publish(DonationReceived(
            Donation.from_webhook({
                "data": {"amount": {"currency": "USD", "value": "1.00"}},
                "meta": {"event_type": "public:direct:donation_updated"},
            })
        ))
        await asyncio.sleep(0.05)
        bot.request_shutdown()
        await asyncio.wait_for(task, timeout=1.0)

        assert auth.calls.count("validate") >= 1
        assert len(chat.sent) == 2
        assert not any(chat.lock_held_during_call)
