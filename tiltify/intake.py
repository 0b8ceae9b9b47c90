"""
Donation intake - state object owned by the webhook layer

Parses the webhook body, drops donations already seen, and publishes
DonationReceived on the CommandBus. The core relies on this to never
see the same donation twice.
"""
import asyncio
import logging
from typing import Any, Set

from core.message_bus import CommandBus
from core.message_types import DonationReceived
from tiltify.donation import Donation

LOGGER = logging.getLogger(__name__)


class DonationIntake:
    """Dedupe + publish for incoming Tiltify webhooks"""

    def __init__(self, bus: CommandBus):
        self.bus = bus
        self._seen: Set[str] = set()
        self._lock = asyncio.Lock()

    async def receive(self, payload: dict[str, Any]) -> bool:
        """
        Handle one webhook body.

        Args:
            payload: Decoded JSON body

        Returns:
            True if a DonationReceived was published, False for a duplicate

        Raises:
            WebhookPayloadError: malformed body (nothing published)
        """
        donation = Donation.from_webhook(payload)

        async with self._lock:
            if donation.donation_id is not None and donation.donation_id in self._seen:
                LOGGER.info(f"🔁 Duplicate donation ignored: {donation.donation_id}")
                return False
            delivered = self.bus.publish(DonationReceived(donation))
            if donation.donation_id is not None:
                self._seen.add(donation.donation_id)

        LOGGER.info(
            f"💸 Tiltify webhook received: {donation.amount.value} {donation.amount.currency} "
            f"({donation.event_type.name}) -> {delivered} subscribers"
        )
        return True

    def seen_count(self) -> int:
        return len(self._seen)
