#!/usr/bin/env python3
"""Helix Chat Transport - chat API calls with the bot user token

Requêtes Helix utilisées par l'annonceur :
- get_streams() : quelles chaînes configurées sont live
- get_moderated_channels() : chaînes où le bot est modérateur
- send_chat_message() : message chat (badge chatbot)
- send_chat_announcement() : annonce colorée (scope moderator:manage:announcements)

Le token est emprunté au TokenHandle à chaque appel ; le client pyTwitchAPI
n'est resynchronisé que lorsque le token change. Le refresh automatique de
la librairie est désactivé : seul le TokenGuardian rafraîchit.
"""

import logging
from typing import List, Optional

from twitchAPI.twitch import Twitch
from twitchAPI.type import AuthScope

from core.interfaces import ChannelStatus, ChatInterface
from twitchapi.auth_manager import BOT_SCOPES
from twitchapi.channels import Channel
from twitchapi.tokens import LiveToken

LOGGER = logging.getLogger(__name__)

STREAMS_BATCH_SIZE = 100


class ChatSendError(Exception):
    """Twitch accepted the request but dropped the message"""

    def __init__(self, channel: Channel, reason: str):
        super().__init__(f"message dropped in {channel.display_name}: {reason}")
        self.channel = channel
        self.reason = reason


def _to_scopes(scopes: List[str]) -> List[AuthScope]:
    known = {scope.value: scope for scope in AuthScope}
    result = [known[s] for s in scopes if s in known]
    unknown = [s for s in scopes if s not in known]
    if unknown:
        LOGGER.debug(f"Scopes inconnus de pyTwitchAPI ignorés: {unknown}")
    return result


class HelixChatClient(ChatInterface):
    """
    Client Helix pour le chat (User Token du bot)
    """

    def __init__(self, twitch: Twitch):
        """
        Args:
            twitch: Instance Twitch API (client_id/secret, sans auth app)
        """
        self.twitch = twitch
        self.twitch.auto_refresh_auth = False
        self._applied_access_token: Optional[str] = None
        LOGGER.debug("HelixChatClient init")

    @classmethod
    async def create(cls, client_id: str, client_secret: Optional[str]) -> "HelixChatClient":
        twitch = await Twitch(client_id, client_secret, authenticate_app=False)
        return cls(twitch)

    async def close(self) -> None:
        await self.twitch.close()

    async def apply_token(self, token: LiveToken) -> None:
        """Apply the borrowed token to the pyTwitchAPI client if it changed"""
        if token.access_token == self._applied_access_token:
            return
        scopes = _to_scopes(token.scopes or BOT_SCOPES)
        await self.twitch.set_user_authentication(
            token.access_token, scopes, token.refresh_token, validate=False
        )
        self._applied_access_token = token.access_token
        LOGGER.debug(f"🔑 User token appliqué au client Helix ({token.login})")

    async def get_live_streams(self, token: LiveToken, channel_ids: List[str]) -> List[ChannelStatus]:
        await self.apply_token(token)
        statuses: List[ChannelStatus] = []
        for start in range(0, len(channel_ids), STREAMS_BATCH_SIZE):
            batch = channel_ids[start:start + STREAMS_BATCH_SIZE]
            LOGGER.debug(f"[HELIX] get_streams({len(batch)} ids)")
            async for stream in self.twitch.get_streams(user_id=batch, first=STREAMS_BATCH_SIZE):
                statuses.append(
                    ChannelStatus(
                        channel_id=stream.user_id,
                        login=stream.user_login,
                        is_live=stream.type == "live",
                    )
                )
        return statuses

    async def get_moderated_channels(self, token: LiveToken, user_id: str) -> List[Channel]:
        await self.apply_token(token)
        LOGGER.debug(f"[HELIX] get_moderated_channels({user_id})")
        channels: List[Channel] = []
        async for moderated in self.twitch.get_moderated_channels(user_id):
            channels.append(Channel(channel_id=moderated.broadcaster_id, display_name=moderated.broadcaster_login))
        return channels

    async def send_chat_message(self, token: LiveToken, channel: Channel, text: str) -> None:
        await self.apply_token(token)
        response = await self.twitch.send_chat_message(channel.channel_id, token.user_id, text)
        if not response.is_sent:
            reason = response.drop_reason.message if response.drop_reason else "unknown"
            raise ChatSendError(channel, reason)

    async def send_announcement(self, token: LiveToken, channel: Channel, text: str, color: str) -> None:
        await self.apply_token(token)
        await self.twitch.send_chat_announcement(channel.channel_id, token.user_id, text, color=color)
