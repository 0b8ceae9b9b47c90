#!/usr/bin/env python3
"""
📢 Donation Announcer - fan a donation out to live moderated channels

Resolves the target set (live ∩ moderated, looked up concurrently), then
sends two independent calls per channel: a short command-style chat
message and a highlighted announcement. A failure only affects that call.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.interfaces import ChatInterface
from core.telemetry import Telemetry
from core.token_handle import TokenHandle
from tiltify.donation import Donation
from twitchapi.channels import Channel, ChannelSet

LOGGER = logging.getLogger(__name__)

MESSAGE = "message"
ANNOUNCEMENT = "announcement"

DEFAULT_MESSAGE = "!donation_received {amount}"
DEFAULT_ANNOUNCEMENT = "A donation of ${amount} has been made by {donor}!"
DEFAULT_ANONYMOUS_NAME = "an anonymous user"
DEFAULT_COLOR = "orange"

MAX_CHAT_LENGTH = 500


@dataclass
class DispatchReport:
    """Outcome of one donation dispatch"""
    attempted: List[Channel] = field(default_factory=list)
    delivered: Dict[str, List[Channel]] = field(
        default_factory=lambda: {MESSAGE: [], ANNOUNCEMENT: []}
    )
    failed: Dict[str, List[Channel]] = field(
        default_factory=lambda: {MESSAGE: [], ANNOUNCEMENT: []}
    )

    @property
    def failure_count(self) -> int:
        return sum(len(channels) for channels in self.failed.values())


class DonationAnnouncer:
    """
    Announces donations in every channel that is both live and moderated
    by the bot.
    """

    def __init__(
        self,
        chat: ChatInterface,
        channels: ChannelSet,
        tokens: TokenHandle,
        telemetry: Optional[Telemetry] = None,
        config: Optional[Dict] = None,
    ):
        """
        Args:
            chat: Chat platform API
            channels: Configured channels
            tokens: Shared token handle (borrowed per call)
            telemetry: Counters / error reporting
            config: "announcements" section (message, announcement, color, anonymous_name)
        """
        self.chat = chat
        self.channels = channels
        self.tokens = tokens
        self.telemetry = telemetry or Telemetry()

        config = config or {}
        self.message_template = config.get("message", DEFAULT_MESSAGE)
        self.announcement_template = config.get("announcement", DEFAULT_ANNOUNCEMENT)
        self.anonymous_name = config.get("anonymous_name", DEFAULT_ANONYMOUS_NAME)
        self.color = config.get("color", DEFAULT_COLOR)

        LOGGER.info(f"📢 DonationAnnouncer initialized - {len(channels)} configured channels, color={self.color}")

    def format_message(self, donation: Donation) -> str:
        return self._render(self.message_template, donation, DEFAULT_MESSAGE)

    def format_announcement(self, donation: Donation) -> str:
        return self._render(self.announcement_template, donation, DEFAULT_ANNOUNCEMENT)

    def _render(self, template: str, donation: Donation, fallback: str) -> str:
        fields = {
            "amount": donation.amount.value,
            "currency": donation.amount.currency,
            "donor": donation.donor_name or self.anonymous_name,
            "comment": donation.donor_comment or "",
        }
        try:
            text = template.format(**fields)
        except (KeyError, IndexError, ValueError) as e:
            LOGGER.error(f"❌ Error formatting template {template!r}: {e}")
            text = fallback.format(**fields)

        if len(text) > MAX_CHAT_LENGTH:
            text = text[:MAX_CHAT_LENGTH - 3] + "..."
        return text

    async def resolve_targets(self) -> List[Channel]:
        """Live moderated channels, resolved with a borrowed token"""
        token = await self.tokens.snapshot()
        return await self.channels.get_moderated_live_channels(self.chat, token)

    async def announce(self, donation: Donation) -> DispatchReport:
        """
        Deliver message + announcement to every target channel.

        Returns:
            DispatchReport (attempted channels, delivered/failed per kind)
        """
        report = DispatchReport()
        targets = await self.resolve_targets()
        LOGGER.info(f"Live channels: {[c.display_name for c in targets]}")

        message = self.format_message(donation)
        announcement = self.format_announcement(donation)

        for channel in targets:
            report.attempted.append(channel)
            await self._send(channel, MESSAGE, message, report)
            await self._send(channel, ANNOUNCEMENT, announcement, report)

        self.telemetry.incr("announcer.donations")
        LOGGER.info(
            f"Donation message sent to {len(report.attempted)} channels. "
            f"Channels were: {[c.display_name for c in report.attempted]}"
        )
        if report.failure_count:
            LOGGER.warning(f"⚠️ {report.failure_count} send(s) failed for this donation")
        return report

    async def _send(self, channel: Channel, kind: str, text: str, report: DispatchReport) -> None:
        LOGGER.info(f"Sending {kind} to channel: {channel.display_name} ({channel.channel_id})")
        token = await self.tokens.snapshot()
        try:
            if kind == ANNOUNCEMENT:
                await self.chat.send_announcement(token, channel, text, self.color)
            else:
                await self.chat.send_chat_message(token, channel, text)
        except Exception as e:
            report.failed[kind].append(channel)
            self.telemetry.incr(f"announcer.{kind}.failed")
            LOGGER.error(f"❌ Error sending {kind} to channel {channel.display_name} ({channel.channel_id}): {e!r}")
            return

        report.delivered[kind].append(channel)
        self.telemetry.incr(f"announcer.{kind}.sent")
        LOGGER.info(f"✅ {kind.capitalize()} sent to channel: {channel.display_name} ({channel.channel_id})")
