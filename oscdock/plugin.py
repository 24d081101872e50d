#!/usr/bin/env python3
"""
oscdock Plugin - StreamDock/StreamDeck plugin process.

ARCHITECTURE:
- The device host launches the plugin with its WebSocket port, the plugin
  UUID and the registration event name
- The plugin connects to ws://localhost:{port}, registers once, then
  receives one JSON envelope per device event
- Each envelope is handed to the EventDispatcher, which sends OSC over UDP
- Nothing is ever sent back to the device host after registration

USAGE:
    python3 -m oscdock -port 28196 -pluginUUID <uuid> -registerEvent registerPlugin -info '{}'
    python3 -m oscdock -port 28196 -pluginUUID <uuid> --config my.yaml --log-level DEBUG

LOGGING:
    Console plus an append-only event log (default: logs/events.log) with a
    start marker, the process arguments, the registration, every OSC send and
    the device events that can trigger one.
"""

import argparse
import asyncio
import copy
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp
import yaml

from oscdock.dispatcher import (
    EventDispatcher,
    EVENT_DIAL_DOWN,
    EVENT_DIAL_ROTATE,
    EVENT_DID_RECEIVE_SETTINGS,
    EVENT_KEY_DOWN,
    EVENT_KEY_UP,
)
from oscdock.log import add_file_handler, get_logger, set_level
from oscdock.plugin_config import (
    DEFAULT_CONFIG,
    default_destination,
    load_config,
    log_file_path,
)
from oscdock.settings import parse_int

logger = get_logger(__name__)

DEFAULT_REGISTER_EVENT = "registerPlugin"

# Envelopes echoed to the event log; others are too chatty
LOGGED_EVENTS = frozenset({
    EVENT_DIAL_ROTATE,
    EVENT_DIAL_DOWN,
    EVENT_KEY_DOWN,
    EVENT_KEY_UP,
    EVENT_DID_RECEIVE_SETTINGS,
})


class DeviceChannel:
    """WebSocket connection to the device host.

    Args:
        port: Device host WebSocket port
        uuid: Plugin UUID assigned by the device host
        register_event: Event name of the registration message
        dispatcher: Receives every decoded envelope
        host: Device host interface (default: localhost)
    """

    def __init__(
        self,
        port: int,
        uuid: str,
        register_event: str,
        dispatcher: EventDispatcher,
        host: str = "localhost",
    ) -> None:
        self.port = port
        self.uuid = uuid
        self.register_event = register_event
        self.dispatcher = dispatcher
        self.host = host

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    def registration_message(self) -> Dict[str, Any]:
        return {"event": self.register_event, "uuid": self.uuid}

    def handle_text(self, data: str) -> bool:
        """Decode one text frame and dispatch it.

        Undecodable frames and non-object JSON are discarded without reply.

        Returns:
            True if the envelope reached the dispatcher
        """
        try:
            message = json.loads(data)
        except (ValueError, RecursionError):
            logger.debug(f"discard undecodable frame: {data[:80]!r}")
            return False

        if not isinstance(message, dict):
            logger.debug(f"discard non-object frame: {data[:80]!r}")
            return False

        if message.get("event") in LOGGED_EVENTS:
            logger.info(json.dumps(message))

        try:
            self.dispatcher.handle(message)
        except Exception as e:
            logger.error(f"Error handling {message.get('event')!r}: {e}")
            return False
        return True

    async def run(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        """Connect, register and process frames until the host closes.

        Raises:
            aiohttp.ClientError: If the connection cannot be established
        """
        own_session = session is None
        if own_session:
            session = aiohttp.ClientSession()

        try:
            async with session.ws_connect(self.url) as ws:
                await ws.send_json(self.registration_message())
                logger.info(f"registered event={self.register_event} uuid={self.uuid}")

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self.handle_text(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        logger.error(f"WS error: {ws.exception()}")
                    else:
                        logger.debug(f"discard {msg.type.name} frame")

            logger.info("WS closed")
            self.dispatcher.stats.log_stats(logger, "oscdock")
        finally:
            if own_session:
                await session.close()


def connect(
    port: int,
    uuid: str,
    register_event: str,
    info: Optional[Dict[str, Any]] = None,
    config: Optional[Dict[str, Any]] = None,
) -> DeviceChannel:
    """Run the plugin against a device host until the connection closes.

    Args:
        port: Device host WebSocket port
        uuid: Plugin UUID
        register_event: Registration event name
        info: Decoded -info payload (application and device description)
        config: Loaded configuration (default: built-in defaults)

    Returns:
        The channel, after it closed
    """
    config = config if config is not None else copy.deepcopy(DEFAULT_CONFIG)
    if info:
        logger.debug(f"info={json.dumps(info, default=str)}")

    dispatcher = EventDispatcher(defaults=default_destination(config))
    channel = DeviceChannel(
        port,
        uuid,
        register_event,
        dispatcher,
        host=config["device"]["host"],
    )
    asyncio.run(channel.run())
    return channel


def _parse_info(text: str) -> Dict[str, Any]:
    try:
        info = json.loads(text)
    except ValueError:
        logger.warning(f"Ignoring undecodable -info: {text[:80]!r}")
        return {}
    return info if isinstance(info, dict) else {}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse the device host's launch arguments.

    The device host uses single-dash long flags; double-dash forms are
    accepted too. Unknown extra arguments are ignored.
    """
    parser = argparse.ArgumentParser(
        description="oscdock - control events to OSC over UDP",
        allow_abbrev=False,
    )
    parser.add_argument(
        '-port', '--port',
        dest='port',
        help='Device host WebSocket port'
    )
    parser.add_argument(
        '-pluginUUID', '--pluginUUID', '-uuid',
        dest='uuid',
        help='Plugin UUID assigned by the device host'
    )
    parser.add_argument(
        '-registerEvent', '--registerEvent',
        dest='register_event',
        default=DEFAULT_REGISTER_EVENT,
        help=f'Registration event name (default: {DEFAULT_REGISTER_EVENT})'
    )
    parser.add_argument(
        '-info', '--info',
        dest='info',
        default='{}',
        help='JSON description of the application and devices'
    )
    parser.add_argument(
        '--config',
        default=None,
        help='Path to YAML config (default: packaged oscdock.yaml)'
    )
    parser.add_argument(
        '--log-level',
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: from config, INFO)'
    )

    args, _unknown = parser.parse_known_args(argv)
    return args


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point used by the device host."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"ERROR loading config: {e}")
        logger.warning("Using default configuration")
        config = copy.deepcopy(DEFAULT_CONFIG)

    set_level(args.log_level or config["logging"]["level"])
    add_file_handler(log_file_path(config), [logging.getLogger("oscdock")])

    raw_argv = argv if argv is not None else sys.argv[1:]
    logger.info(f"--- start {datetime.now().isoformat()} ---")
    logger.info(f"argv={' '.join(raw_argv)}")

    port = parse_int(args.port, 0)
    if port <= 0 or not args.uuid:
        logger.error(f"Missing required args. argv={' '.join(raw_argv)}")
        sys.exit(1)

    try:
        connect(port, args.uuid, args.register_event, _parse_info(args.info), config)
    except aiohttp.ClientError as e:
        logger.error(f"Cannot reach device host on port {port}: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
