#!/usr/bin/env python3
"""
EventSub Chat Transport - inbound Twitch events via EventSub WebSocket
=====================================================================

RÉCEPTION uniquement (l'envoi passe par HelixChatClient) :
    - channel.chat.message       -> ChatEvent "chat.message"
    - channel.chat.notification  -> ChatEvent "chat.notification"
    - stream.online / offline    -> StreamStarted / StreamEnded
    - channel.raid (entrant)     -> RaidInitiated

pyTwitchAPI fait tourner le WebSocket dans son propre thread : les callbacks
repassent sur la boucle principale via call_soon_threadsafe avant de toucher
le ChatEventHandler ou le CommandBus.

Scopes requis:
    - user:read:chat (recevoir messages)
    - user:bot (apparaître comme bot dans chatters list)
"""

import asyncio
import logging
from typing import Callable, List, Optional

from twitchAPI.eventsub.websocket import EventSubWebsocket
from twitchAPI.object.eventsub import (
    ChannelChatMessageEvent,
    ChannelChatNotificationEvent,
    ChannelRaidEvent,
    StreamOfflineEvent,
    StreamOnlineEvent,
)

from core.chat_event_handler import ChatEventHandler
from core.message_bus import BroadcastClosed, CommandBus
from core.message_types import (
    CHAT_MESSAGE,
    CHAT_NOTIFICATION,
    ChatEvent,
    Command,
    RaidInitiated,
    StreamEnded,
    StreamStarted,
)
from twitchapi.channels import Channel, ChannelSet
from twitchapi.tokens import LiveToken
from twitchapi.transports.helix_chat import HelixChatClient

LOGGER = logging.getLogger(__name__)


class EventSubChatTransport:
    """
    Transport EventSub pour les chaînes configurées.

    Attributes:
        helix: Client Helix (porte le user token du bot)
        bus: CommandBus où publier les événements de stream / raid
        handler: ChatEventHandler qui reçoit les ChatEvents
        channels: Chaînes à écouter
    """

    def __init__(
        self,
        helix: HelixChatClient,
        bus: CommandBus,
        handler: ChatEventHandler,
        channels: ChannelSet,
        bot_login: str,
        websocket_factory: Callable[..., EventSubWebsocket] = EventSubWebsocket,
    ):
        self.helix = helix
        self.bus = bus
        self.handler = handler
        self.channels = channels
        self.bot_login = bot_login.lower()
        self._websocket_factory = websocket_factory

        self.eventsub: Optional[EventSubWebsocket] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self._subscribed: List[str] = []

        LOGGER.info(f"EventSubChatTransport init pour {bot_login} sur {len(channels)} channels")

    async def start(self, token: LiveToken) -> None:
        """
        Open the WebSocket and subscribe every configured channel.

        Args:
            token: Current bot token (applied to the Twitch client before subscribing)
        """
        if self._running:
            LOGGER.warning("EventSub transport déjà en cours")
            return

        LOGGER.info("🚀 Démarrage EventSub transport...")
        self._loop = asyncio.get_running_loop()
        await self.helix.apply_token(token)

        self.eventsub = self._websocket_factory(self.helix.twitch)
        self.eventsub.start()
        self._running = True
        LOGGER.info("✅ EventSub WebSocket démarré")

        for channel in self.channels:
            await self._subscribe_channel(channel, token.user_id)

        LOGGER.info(f"✅ EventSub transport démarré - {len(self._subscribed)}/{len(self.channels)} channels")

    async def stop(self) -> None:
        if not self._running:
            return
        LOGGER.info("🛑 Arrêt EventSub transport...")
        if self.eventsub:
            await self.eventsub.stop()
            self.eventsub = None
        self._running = False
        self._subscribed.clear()
        LOGGER.info("✅ EventSub transport arrêté")

    def is_running(self) -> bool:
        return self._running

    def get_channels(self) -> List[str]:
        return list(self._subscribed)

    async def _subscribe_channel(self, channel: Channel, bot_user_id: str) -> bool:
        """
        Returns:
            True si tous les abonnements de la chaîne ont réussi
        """
        broadcaster_id = channel.channel_id
        try:
            LOGGER.info(f"📡 Abonnement EventSub de #{channel.display_name}...")
            await self.eventsub.listen_channel_chat_message(broadcaster_id, bot_user_id, self._on_chat_message)
            await self.eventsub.listen_channel_chat_notification(
                broadcaster_id, bot_user_id, self._on_chat_notification
            )
            await self.eventsub.listen_stream_online(broadcaster_id, self._on_stream_online)
            await self.eventsub.listen_stream_offline(broadcaster_id, self._on_stream_offline)
            await self.eventsub.listen_channel_raid(self._on_raid, to_broadcaster_user_id=broadcaster_id)
        except Exception as e:
            LOGGER.error(f"❌ Échec abonnement #{channel.display_name} ({broadcaster_id}): {e}")
            return False

        self._subscribed.append(channel.display_name)
        LOGGER.info(f"✅ Abonné à #{channel.display_name}")
        return True

    # ========== Callbacks (thread EventSub) ==========

    async def _on_chat_message(self, data: ChannelChatMessageEvent) -> None:
        evt = data.event
        if evt.chatter_user_login.lower() == self.bot_login:
            return
        self._feed(
            ChatEvent(
                kind=CHAT_MESSAGE,
                channel_id=evt.broadcaster_user_id,
                channel_login=evt.broadcaster_user_login,
                chatter_login=evt.chatter_user_login,
                text=evt.message.text,
                message_id=evt.message_id,
            )
        )

    async def _on_chat_notification(self, data: ChannelChatNotificationEvent) -> None:
        evt = data.event
        chatter = None if evt.chatter_is_anonymous else evt.chatter_user_login
        self._feed(
            ChatEvent(
                kind=CHAT_NOTIFICATION,
                channel_id=evt.broadcaster_user_id,
                channel_login=evt.broadcaster_user_login,
                chatter_login=chatter,
                text=evt.system_message,
                message_id=evt.message_id,
            )
        )

    async def _on_stream_online(self, data: StreamOnlineEvent) -> None:
        LOGGER.info(f"🟢 #{data.event.broadcaster_user_login} est live")
        self._publish(StreamStarted(tag=data.event.broadcaster_user_login))

    async def _on_stream_offline(self, data: StreamOfflineEvent) -> None:
        LOGGER.info(f"⚫ #{data.event.broadcaster_user_login} est offline")
        self._publish(StreamEnded(tag=data.event.broadcaster_user_login))

    async def _on_raid(self, data: ChannelRaidEvent) -> None:
        evt = data.event
        LOGGER.info(f"🎉 Raid de {evt.from_broadcaster_user_login} vers #{evt.to_broadcaster_user_login} ({evt.viewers} viewers)")
        self._publish(RaidInitiated(tag=evt.from_broadcaster_user_login))

    def _feed(self, event: ChatEvent) -> None:
        self._loop.call_soon_threadsafe(self.handler.feed, event)

    def _publish(self, command: Command) -> None:
        self._loop.call_soon_threadsafe(self._publish_on_loop, command)

    def _publish_on_loop(self, command: Command) -> None:
        try:
            self.bus.publish(command)
        except BroadcastClosed:
            LOGGER.debug(f"Bus fermé, {type(command).__name__} ignoré")
