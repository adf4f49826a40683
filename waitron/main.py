"""
Waitron main entry point.

Loads configuration, starts the stale build watchdog and serves the HTTP
API until a shutdown signal arrives.
"""

import argparse
import asyncio
import signal
import sys

import structlog
from hypercorn.asyncio import serve
from hypercorn.config import Config

from waitron import create_app
from waitron.config import WaitronConfig
from waitron.exceptions import ConfigurationError
from waitron.logging_config import configure_logging
from waitron.services import WaitronService

configure_logging()

logger = structlog.get_logger()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="waitron", description="Network boot provisioning control plane")
    parser.add_argument("--config", "-config", default=None, help="Path to config file")
    parser.add_argument("--address", "-address", default=None, help="Address to listen for requests")
    parser.add_argument("--port", "-port", type=int, default=None, help="Port to listen for requests")
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> WaitronConfig:
    """Load configuration from --config or CONFIG_FILE."""
    config_file = args.config or WaitronConfig.config_file_from_env()
    if not config_file:
        raise ConfigurationError("environment variable CONFIG_FILE must be set or use --config")

    config = WaitronConfig.from_file(config_file)
    if args.address:
        config.address = args.address
    if args.port:
        config.port = args.port
    return config


async def run(config: WaitronConfig) -> None:
    """Serve until SIGINT or SIGTERM."""
    service = WaitronService(config)
    app = create_app(config, service)

    hypercorn_config = Config()
    hypercorn_config.bind = [f"{config.address}:{config.port}"]
    hypercorn_config.accesslog = "-"
    hypercorn_config.errorlog = "-"

    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    service.start()
    logger.info("waitron_starting", address=config.address, port=config.port)

    try:
        await serve(app, hypercorn_config, shutdown_trigger=stop_event.wait, mode="wsgi")
    finally:
        await asyncio.to_thread(service.shutdown, 30)
        logger.info("waitron_stopped")


def main(argv=None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args)
    except ConfigurationError as e:
        logger.error("configuration_error", error=e.detail)
        sys.exit(1)

    configure_logging(config.log_level)

    try:
        asyncio.run(run(config))
    except Exception as e:
        logger.error("waitron_fatal_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
