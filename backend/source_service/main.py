# backend/source_service/main.py
"""
MQTT source service - entry point

Loads the bridge configuration, starts one source instance and runs until
interrupted.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from common.bridge_core.config.config_model import BridgeSettings, LoggingSettings, load_settings
from common.bridge_core.errors import ConfigurationError

from .service import ChangeSink, JsonLinesChangeSink, LoggingChangeSink, MqttSourceService

logger = logging.getLogger(__name__)


def setup_logging(logging_settings: LoggingSettings, log_level: Optional[str] = None):
    """Configures logging from settings; --log-level wins over the file."""
    handlers = [logging.StreamHandler(sys.stderr)]
    if logging_settings.file:
        handlers.append(logging.FileHandler(logging_settings.file))

    logging.basicConfig(
        level=getattr(logging, (log_level or logging_settings.level).upper()),
        format=logging_settings.format,
        handlers=handlers,
        force=True,
    )


def parse_arguments(argv=None):
    """Parses command line arguments"""
    parser = argparse.ArgumentParser(
        description="MQTT source: turns MQTT messages into graph change operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bridge-source --config bridge.yaml
  bridge-source --config bridge.yaml --sink jsonl > changes.jsonl
  python -m backend.source_service.main --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML/JSON configuration file (default: search standard locations)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level (default: from configuration, INFO)",
    )

    parser.add_argument(
        "--sink",
        choices=["log", "jsonl"],
        default="log",
        help="Where change operations go: log or JSON lines on stdout (default: log)",
    )

    return parser.parse_args(argv)


def create_sink(name: str) -> ChangeSink:
    if name == "jsonl":
        return JsonLinesChangeSink(sys.stdout)
    return LoggingChangeSink()


async def run_service(service: MqttSourceService, stop_event: asyncio.Event) -> int:
    """Runs the service until stop_event is set."""
    if not await service.start_mqtt():
        return 1

    logger.info(
        f"Source {service.settings.id} listening on {service.settings.topic} "
        f"(mode={service.settings.mode.value})"
    )
    try:
        await stop_event.wait()
    finally:
        await service.stop_mqtt()
        logger.info(f"Source statistics: {service.stats}")
    return 0


async def main(argv=None) -> int:
    """Main function"""
    args = parse_arguments(argv)

    try:
        settings: BridgeSettings = load_settings(args.config)
        source_settings = settings.require_source()
    except ConfigurationError as e:
        setup_logging(LoggingSettings(), args.log_level)
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging(settings.logging, args.log_level)
    logger.info(f"Starting MQTT source service {source_settings.id}...")

    service = MqttSourceService(source_settings, settings.mqtt, sink=create_sink(args.sink))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    return await run_service(service, stop_event)


def run():
    """Console script entry point"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Service stopped by user")


if __name__ == "__main__":
    run()
