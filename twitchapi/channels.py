#!/usr/bin/env python3
"""
Channel registry - channels the bot is configured for

Loaded once at startup, saved right back, then read-only. Live and
moderated subsets are resolved on demand through the chat API.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from core.interfaces import ChatInterface
from twitchapi.tokens import LiveToken

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Channel:
    channel_id: str
    display_name: str


class ChannelSet:
    """Ordered list of channels (duplicates are the caller's concern)"""

    def __init__(self, channels: Iterable[Channel] = ()):
        self._channels: list[Channel] = list(channels)

    def __iter__(self) -> Iterator[Channel]:
        return iter(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChannelSet):
            return NotImplemented
        return self._channels == other._channels

    def __repr__(self) -> str:
        return f"ChannelSet({[c.display_name for c in self._channels]})"

    def ids(self) -> list[str]:
        return [c.channel_id for c in self._channels]

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = [{"channel_id": c.channel_id, "display_name": c.display_name} for c in self._channels]
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        LOGGER.debug(f"💾 {len(self._channels)} channels saved to {path}")

    @classmethod
    def load(cls, path: str | Path) -> "ChannelSet":
        """
        Raises:
            OSError: file missing/unreadable
            ValueError: invalid JSON or not a list
            KeyError: entry without channel_id/display_name
        """
        with open(Path(path), "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{path}: expected a JSON list of channels")
        channels = cls(
            Channel(channel_id=str(entry["channel_id"]), display_name=str(entry["display_name"]))
            for entry in data
        )
        LOGGER.info(f"📺 {len(channels)} channels loaded from {path}")
        return channels

    async def get_live_channels(self, chat: ChatInterface, token: LiveToken) -> list[Channel]:
        """Configured channels currently streaming (empty list on API error)"""
        if not self._channels:
            return []
        try:
            statuses = await chat.get_live_streams(token, self.ids())
        except Exception as e:
            LOGGER.error(f"❌ Error fetching live streams: {e}")
            return []
        return [Channel(channel_id=s.channel_id, display_name=s.login) for s in statuses if s.is_live]

    async def get_moderated_channels(self, chat: ChatInterface, token: LiveToken) -> list[Channel]:
        """Channels the token owner moderates (empty list on API error)"""
        try:
            return list(await chat.get_moderated_channels(token, token.user_id))
        except Exception as e:
            LOGGER.error(f"❌ Error fetching moderated channels: {e}")
            return []

    async def get_moderated_live_channels(self, chat: ChatInterface, token: LiveToken) -> list[Channel]:
        """
        Target set for announcements: moderated channels that are live now.

        Both lookups run concurrently; the intersection is by channel ID and
        keeps the moderated-list order.
        """
        live, moderated = await asyncio.gather(
            self.get_live_channels(chat, token),
            self.get_moderated_channels(chat, token),
        )
        LOGGER.info(f"Found {len(live)} live and {len(moderated)} moderated channels")
        LOGGER.info(f"Live: {' '.join(c.display_name for c in live)}")
        LOGGER.info(f"Moderated: {' '.join(c.display_name for c in moderated)}")

        live_ids = {c.channel_id for c in live}
        return [c for c in moderated if c.channel_id in live_ids]
