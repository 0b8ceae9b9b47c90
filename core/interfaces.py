"""Collaborator interfaces: the chat platform API and the OAuth endpoints."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from twitchapi.channels import Channel
    from twitchapi.tokens import LiveToken


@dataclass(frozen=True)
class ChannelStatus:
    """Stream status of one channel as reported by the platform."""

    channel_id: str
    login: str
    is_live: bool


class ChatInterface(ABC):
    """Chat platform calls used by the announcer and the channel registry.

    Every call receives the token borrowed from the shared handle; no
    implementation may keep the handle lock while awaiting the network.
    """

    @abstractmethod
    async def get_live_streams(self, token: "LiveToken", channel_ids: list[str]) -> list[ChannelStatus]:
        """
        Stream status for the given channel IDs.

        Args:
            token: Borrowed bot token
            channel_ids: Broadcaster IDs to look up

        Returns:
            One ChannelStatus per channel currently streaming (others may be omitted)
        """
        pass

    @abstractmethod
    async def get_moderated_channels(self, token: "LiveToken", user_id: str) -> list["Channel"]:
        """
        Channels where user_id is a moderator.

        Returns:
            Moderated channels
        """
        pass

    @abstractmethod
    async def send_chat_message(self, token: "LiveToken", channel: "Channel", text: str) -> None:
        """Send a chat message as the token owner (raises on failure)."""
        pass

    @abstractmethod
    async def send_announcement(self, token: "LiveToken", channel: "Channel", text: str, color: str) -> None:
        """Send a highlighted announcement as the token owner (raises on failure)."""
        pass


class AuthInterface(ABC):
    """OAuth endpoints used by the token guardian."""

    @abstractmethod
    async def refresh(self, token: "LiveToken") -> "LiveToken":
        """Return a refreshed token (raises RefreshError)."""
        pass

    @abstractmethod
    async def validate(self, token: "LiveToken") -> "LiveToken":
        """Return the token updated from Twitch (raises ValidationError)."""
        pass
