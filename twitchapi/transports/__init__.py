"""
twitchapi/transports/
=====================

Clients de transport pour l'API Twitch.

Modules:
- helix_chat : Client Helix avec le User Token du bot
- eventsub_chat_client : Transport EventSub WebSocket (chat, stream online/offline, raids)
"""

from twitchapi.transports.eventsub_chat_client import EventSubChatTransport
from twitchapi.transports.helix_chat import ChatSendError, HelixChatClient

__all__ = ["ChatSendError", "EventSubChatTransport", "HelixChatClient"]
