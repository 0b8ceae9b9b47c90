"""
Core - bot logic (bus, loops, announcer)
"""

# Import explicites pour Pylance
from core.message_bus import BroadcastClosed, CommandBus, Empty, Lagged, Subscription
from core.message_types import ChatEvent, Command, DonationReceived, Shutdown
from core.telemetry import Telemetry

__all__ = [
    "BroadcastClosed",
    "ChatEvent",
    "Command",
    "CommandBus",
    "DonationReceived",
    "Empty",
    "Lagged",
    "Shutdown",
    "Subscription",
    "Telemetry",
]
