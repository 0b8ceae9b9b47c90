#!/usr/bin/env python3
"""
Donation Bot - Tiltify donations announced in live Twitch channels

Bootstrap:
    .env + config.yaml -> credential (device code grant if needed) -> channels
    -> TokenGuardian + CommandRouter + ChatEventHandler (+ EventSub transport)
"""

import argparse
import asyncio
import logging
import pathlib
import signal
import sys

from dotenv import load_dotenv

from core.bot import Bot
from core.chat_event_handler import ChatCommandRegistry, ChatEventHandler
from core.command_router import CommandRouter
from core.config import DEFAULT_CONFIG_PATH, ConfigError, load_config
from core.donation_announcer import DonationAnnouncer
from core.message_bus import CommandBus
from core.telemetry import Telemetry
from core.token_guardian import TokenGuardian
from core.token_handle import TokenHandle
from twitchapi.auth_manager import AuthManager
from twitchapi.channels import ChannelSet
from twitchapi.oauth_client import OAuthClient
from twitchapi.tokens import Credential
from twitchapi.transports.eventsub_chat_client import EventSubChatTransport
from twitchapi.transports.helix_chat import HelixChatClient

# Logger will be configured in setup_logging()
LOGGER = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Donation Bot - Tiltify to Twitch announcements")
    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f'Path to config file (default: {DEFAULT_CONFIG_PATH})'
    )
    parser.add_argument(
        '--no-chat',
        action='store_true',
        help='Do not open the EventSub chat transport'
    )
    return parser.parse_args(argv)


def setup_logging(log_file="logs/bot.log"):
    """Root logger: logs/bot.log + console"""
    log_path = pathlib.Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler()
        ],
        force=True
    )
    return log_path


def load_credential(path, config):
    """Stored credential, or the configured bot identity when nothing is stored"""
    try:
        return Credential.load(path)
    except (OSError, ValueError, KeyError) as e:
        LOGGER.warning(f"⚠️ No usable credential at {path} ({e}), using default identity")

    bot = config["bot"]
    if bot.get("user_id") and bot.get("name"):
        return Credential(user_id=str(bot["user_id"]), display_name=str(bot["name"]))
    return Credential.from_env()


def load_channels(path):
    try:
        return ChannelSet.load(path)
    except (OSError, ValueError, KeyError) as e:
        LOGGER.warning(f"⚠️ No usable channel list at {path} ({e}), starting with none")
        return ChannelSet()


def install_signal_handlers(bot):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.request_shutdown)
        except NotImplementedError:
            # Windows: KeyboardInterrupt handled in __main__
            pass


async def main(argv=None):
    """Main entry point: token bootstrap, channel registry, bot loops"""
    args = parse_args(argv)
    load_dotenv()
    setup_logging()

    print("=" * 70)
    print("Donation Bot - Tiltify -> Twitch")
    print("=" * 70)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        LOGGER.error(f"❌ {e}")
        sys.exit(1)

    twitch_config = config["twitch"]
    if not twitch_config.get("client_id"):
        LOGGER.error("❌ CLIENT_ID missing (config twitch.client_id or environment)")
        sys.exit(1)

    storage = config["storage"]
    telemetry = Telemetry()

    # Token bootstrap
    oauth = OAuthClient(twitch_config["client_id"], twitch_config.get("client_secret"))
    auth = AuthManager(oauth)
    try:
        credential = load_credential(storage["bot"], config)
    except KeyError as e:
        LOGGER.error(f"❌ No bot identity: {e}")
        sys.exit(1)
    try:
        token = await auth.bootstrap(credential)
    except Exception as e:
        LOGGER.error(f"❌ Could not obtain a bot token: {e}", exc_info=True)
        sys.exit(1)
    credential.save(storage["bot"])
    LOGGER.info(f"🔑 Bot token ready for {token.login} ({token.user_id})")

    # Channels (loaded once, saved straight back)
    channels = load_channels(storage["channels"])
    channels.save(storage["channels"])
    LOGGER.info(f"📺 Channels: {channels}")

    bus = CommandBus(capacity=int(config["broadcast"]["capacity"]))
    tokens = TokenHandle(token)
    helix = await HelixChatClient.create(twitch_config["client_id"], twitch_config.get("client_secret"))

    guardian_config = config["token_guardian"]
    guardian = TokenGuardian(
        oauth,
        tokens,
        bus.subscribe("token_guardian"),
        storage["bot"],
        telemetry=telemetry,
        interval=float(guardian_config["interval"]),
        refresh_threshold=float(guardian_config["refresh_threshold"]),
    )
    announcer = DonationAnnouncer(helix, channels, tokens, telemetry=telemetry, config=config["announcements"])
    router = CommandRouter(
        bus.subscribe("command_router"),
        announcer=announcer,
        telemetry=telemetry,
        poll_interval=float(config["command_router"]["poll_interval"]),
    )

    chat_handler = None
    transport = None
    chat_config = config["chat_events"]
    if chat_config.get("enabled", True) and not args.no_chat:
        chat_handler = ChatEventHandler(
            tokens,
            bus.subscribe("chat_event_handler"),
            registry=ChatCommandRegistry(),
            telemetry=telemetry,
            poll_interval=float(chat_config["poll_interval"]),
        )
        transport = EventSubChatTransport(helix, bus, chat_handler, channels, token.login)

    bot = Bot(bus, guardian, router, chat_handler=chat_handler, transport=transport)
    install_signal_handlers(bot)

    try:
        await bot.run()
    except Exception as e:
        LOGGER.error(f"❌ Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        bus.close()
        await helix.close()
        LOGGER.info(f"📊 Stats: {telemetry.get_stats()}")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Shutting down...")


if __name__ == "__main__":
    run()
