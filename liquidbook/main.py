"""Command-line entrypoint for running the market maker."""

import argparse
import asyncio
import signal
from pathlib import Path
from typing import Optional

from liquidbook import __version__, load_config
from liquidbook.connectors.base import VenueError
from liquidbook.connectors.binance import BinanceConnector
from liquidbook.execution.order_manager import OrderManager
from liquidbook.utils.logger import setup_from_config


def _install_signal_handlers(stop: asyncio.Event, logger) -> None:
    loop = asyncio.get_running_loop()

    def _request_stop(signame: str) -> None:
        if stop.is_set():
            logger.info("Shutdown already in progress")
            return
        logger.info("Received %s, stopping after the current cycle", signame)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, sig.name)
        except NotImplementedError:  # Windows
            pass


async def run_bot(config: dict, stop: Optional[asyncio.Event] = None) -> None:
    """Instantiate subsystems and run the quoting loop until stopped."""
    logger = setup_from_config(config.get("logging"))
    logger.info("Launching liquidbook v%s", __version__)

    stop = stop or asyncio.Event()
    _install_signal_handlers(stop, logger)

    connector = BinanceConnector(config["exchange"], config["trading"]["symbol"], logger=logger)
    try:
        rules = await connector.load_market()
        order_manager = OrderManager(connector=connector, config=config, logger=logger, rules=rules)
        await order_manager.run(stop)
    finally:
        await connector.close()
        logger.info("Bot stopped")


def cli() -> None:
    parser = argparse.ArgumentParser(description="Depth-weighted two-sided market maker")
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to the YAML configuration file (default: $LIQUIDBOOK_CONFIG or bundled config.yaml)",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    try:
        asyncio.run(run_bot(config))
    except VenueError as exc:
        # only fatal venue errors escape the loop (bad credentials, permissions)
        raise SystemExit(f"Fatal venue error: {exc}") from exc


if __name__ == "__main__":
    cli()
