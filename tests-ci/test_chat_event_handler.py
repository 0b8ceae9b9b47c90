"""
Tests du ChatEventHandler (parsing des commandes chat + boucle)
"""
import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from core.chat_event_handler import ChatCommandRegistry, ChatEventHandler, parse_command
from core.message_bus import CommandBus
from core.message_types import CHAT_MESSAGE, CHAT_NOTIFICATION, ChatEvent, Shutdown, StreamStarted


def chat(text, kind=CHAT_MESSAGE, chatter="viewer"):
    return ChatEvent(kind=kind, channel_id="1", channel_login="alpha", chatter_login=chatter, text=text)


@pytest.mark.unit
class TestParseCommand:
    @pytest.mark.parametrize("text, expected", [
        ("!hello", ("hello", None)),
        ("!so  streamer  now", ("so", "streamer  now")),
        ("!donation_received 25.00", ("donation_received", "25.00")),
        ("hello !not_a_command", None),
        ("!", None),
        ("!   ", None),
        ("", None),
    ])
    def test_parse(self, text, expected):
        assert parse_command(text) == expected


@pytest.mark.unit
class TestHandleEvent:
    @pytest.mark.asyncio
    async def test_registered_command_dispatched(self, bus, token_handle):
        handler_fn = AsyncMock()
        registry = ChatCommandRegistry()
        registry.register("Hello", handler_fn)
        handler = ChatEventHandler(token_handle, bus.subscribe(), registry=registry)

        await handler.handle_event(chat("!hello world"))

        ctx = handler_fn.await_args.args[0]
        assert ctx.command_name == "hello"
        assert ctx.raw_args == "world"
        assert ctx.event.chatter_login == "viewer"
        assert ctx.token.access_token == "access-1"

    @pytest.mark.asyncio
    async def test_unknown_command_logged(self, bus, token_handle, caplog):
        handler = ChatEventHandler(token_handle, bus.subscribe())

        with caplog.at_level(logging.INFO):
            await handler.handle_event(chat("!whatever"))

        assert "Command: whatever" in caplog.text

    @pytest.mark.asyncio
    async def test_custom_default_handler(self, bus, token_handle):
        default = AsyncMock()
        handler = ChatEventHandler(token_handle, bus.subscribe(), registry=ChatCommandRegistry(default=default))

        await handler.handle_event(chat("!unknown"))

        default.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_plain_message_not_dispatched(self, bus, token_handle):
        default = AsyncMock()
        handler = ChatEventHandler(token_handle, bus.subscribe(), registry=ChatCommandRegistry(default=default))

        await handler.handle_event(chat("just chatting"))

        default.assert_not_called()

    @pytest.mark.asyncio
    async def test_notification_logged_only(self, bus, token_handle, caplog):
        default = AsyncMock()
        handler = ChatEventHandler(token_handle, bus.subscribe(), registry=ChatCommandRegistry(default=default))

        with caplog.at_level(logging.INFO):
            await handler.handle_event(chat("!sub gifted", kind=CHAT_NOTIFICATION, chatter=None))

        default.assert_not_called()
        assert "anonymous: !sub gifted" in caplog.text

    @pytest.mark.asyncio
    async def test_other_kinds_ignored(self, bus, token_handle):
        default = AsyncMock()
        handler = ChatEventHandler(token_handle, bus.subscribe(), registry=ChatCommandRegistry(default=default))

        await handler.handle_event(chat("!hello", kind="channel.follow"))

        default.assert_not_called()

    @pytest.mark.asyncio
    async def test_command_error_captured(self, bus, token_handle, telemetry):
        registry = ChatCommandRegistry()
        registry.register("boom", AsyncMock(side_effect=RuntimeError("boom")))
        handler = ChatEventHandler(token_handle, bus.subscribe(), registry=registry, telemetry=telemetry)

        await handler.handle_event(chat("!boom"))

        assert telemetry.errors["chat.command.boom"] == 1

    def test_unregister(self):
        registry = ChatCommandRegistry()
        registry.register("hello", AsyncMock())
        registry.unregister("HELLO")
        assert registry.names() == []


@pytest.mark.unit
class TestRunLoop:
    @pytest.mark.asyncio
    async def test_fed_events_handled_until_shutdown(self, bus, token_handle):
        handler_fn = AsyncMock()
        registry = ChatCommandRegistry()
        registry.register("hello", handler_fn)
        handler = ChatEventHandler(token_handle, bus.subscribe(), registry=registry, poll_interval=0.01)
        task = asyncio.create_task(handler.run())

        handler.feed(chat("!hello"))
        handler.feed(chat("!hello again"))
        await asyncio.sleep(0.05)
        bus.publish(Shutdown())

        await asyncio.wait_for(task, timeout=0.5)
        assert handler_fn.await_count == 2

    @pytest.mark.asyncio
    async def test_shutdown_within_one_poll_cycle(self, bus, token_handle):
        handler = ChatEventHandler(token_handle, bus.subscribe(), poll_interval=0.1)
        task = asyncio.create_task(handler.run())
        await asyncio.sleep(0.01)

        bus.publish(Shutdown())

        await asyncio.wait_for(task, timeout=0.5)

    @pytest.mark.asyncio
    async def test_lag_does_not_stop_loop(self, token_handle):
        bus = CommandBus(capacity=1)
        handler = ChatEventHandler(token_handle, bus.subscribe(), poll_interval=0.01)
        bus.publish(StreamStarted("a"))
        bus.publish(StreamStarted("b"))
        task = asyncio.create_task(handler.run())
        await asyncio.sleep(0.03)

        assert not task.done()
        bus.publish(Shutdown())
        await asyncio.wait_for(task, timeout=0.5)

    @pytest.mark.asyncio
    async def test_closed_bus_stops_loop(self, bus, token_handle):
        handler = ChatEventHandler(token_handle, bus.subscribe(), poll_interval=0.01)
        task = asyncio.create_task(handler.run())
        bus.close()
        await asyncio.wait_for(task, timeout=0.5)
