"""Main entry point for the Slack DM to WhatsApp relay."""

import argparse
import asyncio
import logging
import sys

from .config import load_config
from .errors import ConfigurationError, SourceFetchError
from .relay import Relay
from .services import DeliveryService, NameResolver
from .slack_client import SlackReader
from .whatsapp_client import WhatsAppClient


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# HTTP and Slack client loggers log every request at INFO/DEBUG
NOISY_LOGGERS = ("httpx", "httpcore", "slack_sdk")


def setup_logging(verbose: bool = False) -> None:
    """Log to stdout; DEBUG with ``verbose``, INFO otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


async def async_main(args, logger) -> int:
    """Async main function."""
    try:
        logger.info("Loading configuration from %s", args.config)
        config = load_config(args.config)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    timeout = config.relay.request_timeout
    reader = SlackReader(config.slack, timeout=timeout)
    whatsapp = WhatsAppClient(config.whatsapp, timeout=timeout)
    delivery = DeliveryService(
        whatsapp,
        config.whatsapp.dest_numbers,
        handshake_delay=config.whatsapp.handshake_delay,
        max_caption_length=config.relay.max_caption_length,
    )
    relay = Relay(config, reader, delivery, NameResolver(reader.client))

    try:
        await relay.bootstrap()

        if args.once:
            logger.info("Running single poll cycle...")
            processed = await relay.run_once()
            logger.info("Processed %d message(s)", processed)
        else:
            logger.info("Relaying personal Slack DMs with per-conversation cooldown")
            await relay.run()

        return 0

    except SourceFetchError as e:
        logger.error("Bootstrap failed: %s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1
    finally:
        await reader.close()
        await whatsapp.close()


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Relay Slack direct messages to WhatsApp",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                      # Run with default config.yaml
  %(prog)s -c myconfig.yaml     # Run with custom config
  %(prog)s -v                   # Run with verbose logging
  %(prog)s --once               # Bootstrap, poll once and exit
        """,
    )

    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one poll cycle and exit (right after bootstrap nothing is new yet)",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        return asyncio.run(async_main(args, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
