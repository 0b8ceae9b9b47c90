"""
📦 Message Types - DTOs for the internal command stream

Contracts between producers (webhook intake, EventSub transport) and the
bot loops (token guardian, command router, chat event handler).
"""
import time
from dataclasses import dataclass, field
from typing import Optional, Union

from tiltify.donation import Donation


@dataclass(frozen=True)
class Shutdown:
    """Stop signal, every loop watches for it on its own subscription"""


@dataclass(frozen=True)
class DonationReceived:
    """A donation arrived through the Tiltify webhook"""
    donation: Donation


@dataclass(frozen=True)
class RaidInitiated:
    """Incoming raid (tag = raiding channel login)"""
    tag: str


@dataclass(frozen=True)
class StreamStarted:
    """Channel went live (tag = channel login)"""
    tag: str


@dataclass(frozen=True)
class StreamEnded:
    """Channel went offline (tag = channel login)"""
    tag: str


Command = Union[Shutdown, DonationReceived, RaidInitiated, StreamStarted, StreamEnded]


CHAT_MESSAGE = "chat.message"
CHAT_NOTIFICATION = "chat.notification"


@dataclass
class ChatEvent:
    """Inbound chat event normalized by the EventSub transport"""
    kind: str                       # CHAT_MESSAGE, CHAT_NOTIFICATION or anything else
    channel_id: str                 # Twitch ID of the broadcaster
    channel_login: str              # Channel login (without #)
    chatter_login: Optional[str]    # None for anonymous notifications
    text: str                       # Message text
    message_id: Optional[str] = None
    timestamp: float = field(default=0.0)

    def __post_init__(self):
        if self.timestamp == 0.0:
            self.timestamp = time.time()
