"""
twitchapi/
==========

Module dédié à TOUTE la gestion de l'API Twitch.

Organisation:
- tokens.py : LiveToken + Credential persisté
- oauth_client.py : endpoints OAuth id.twitch.tv (refresh, validate, device code)
- auth_manager.py : bootstrap du token bot
- channels.py : registre des chaînes configurées
- transports/ : Clients API Twitch
  - helix_chat.py : Helix avec le User Token du bot (streams, modération, chat)
  - eventsub_chat_client.py : EventSub WebSocket (réception)
"""

from twitchapi.auth_manager import AuthManager
from twitchapi.tokens import Credential, LiveToken

__all__ = ["AuthManager", "Credential", "LiveToken"]
