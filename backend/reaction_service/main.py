# backend/reaction_service/main.py
"""
MQTT reaction service - entry point

Reads query-result JSON documents (one per line) from stdin and publishes
them through the configured reaction until stdin is closed or the process
is interrupted.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
import threading
from typing import Optional, TextIO

from common.bridge_core.config.config_model import BridgeSettings, LoggingSettings, load_settings
from common.bridge_core.errors import ConfigurationError
from common.bridge_core.reaction import QueryResult

from .service import MqttReactionService

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
        description="MQTT reaction: publishes continuous query results to MQTT",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Input is one JSON document per line, either
  {"query_id": "hot", "added": [...], "updated": [...], "removed": [...]}
or
  {"query_id": "hot", "results": [{"type": "add", "data": {...}}, ...]}

Examples:
  engine-output | bridge-reaction --config bridge.yaml
  python -m backend.reaction_service.main --config bridge.yaml < results.jsonl
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

    return parser.parse_args(argv)


def parse_result_line(line: str) -> Optional[QueryResult]:
    """
    Parses one input line.

    Returns:
        QueryResult, or None for blank or invalid lines (invalid ones are logged)
    """
    line = line.strip()
    if not line:
        return None
    try:
        document = json.loads(line)
        if not isinstance(document, dict):
            raise ValueError("query result must be a JSON object")
        return QueryResult.from_dict(document)
    except ValueError as e:
        logger.warning(f"Skipping invalid query result: {e}")
        return None


def read_results(
    stream: TextIO,
    service: MqttReactionService,
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """Feeds results from a stream into the service; sets stop_event at EOF."""
    try:
        for line in stream:
            result = parse_result_line(line)
            if result is not None:
                service.submit(result)
    finally:
        logger.info("Input closed")
        loop.call_soon_threadsafe(stop_event.set)


async def run_service(service: MqttReactionService, stream: TextIO, stop_event: asyncio.Event) -> int:
    """Runs the service until the input ends or stop_event is set."""
    if not await service.start_mqtt():
        return 1

    reader = threading.Thread(
        target=read_results,
        args=(stream, service, asyncio.get_running_loop(), stop_event),
        name="reaction-input",
        daemon=True,
    )
    reader.start()

    try:
        await stop_event.wait()
        await service.drain()
    finally:
        await service.stop_mqtt()
        logger.info(f"Reaction statistics: {service.stats}")
    return 0


async def main(argv=None) -> int:
    """Main function"""
    args = parse_arguments(argv)

    try:
        settings: BridgeSettings = load_settings(args.config)
        reaction_settings = settings.require_reaction()
    except ConfigurationError as e:
        setup_logging(LoggingSettings(), args.log_level)
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging(settings.logging, args.log_level)
    logger.info(f"Starting MQTT reaction service {reaction_settings.id}...")

    service = MqttReactionService(reaction_settings, settings.mqtt)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    return await run_service(service, sys.stdin, stop_event)


def run():
    """Console script entry point"""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Service stopped by user")


if __name__ == "__main__":
    run()
