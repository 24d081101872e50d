#!/usr/bin/env python3
"""
Command-line OSC sender.

Sends one message through the same encoder and UDP path the plugin uses,
handy for checking a receiver without the device.

Usage:
    python -m oscdock.cli <address> [arg1] [arg2] ... [--host HOST] [--port PORT]

Examples:
    python -m oscdock.cli /press
    python -m oscdock.cli /left 6 --port 9000
    python -m oscdock.cli /mixer/fader 0.75 true nil "main out"
"""

import argparse
import sys
from typing import Any, List, Optional

from oscdock.osc import send_osc
from oscdock.settings import DEFAULT_DESTINATION


def parse_argument(arg: str) -> Any:
    """Parse a command-line argument to the closest OSC value.

    int, then float, then true/false (T/F), nil (N), else the string.
    """
    try:
        return int(arg)
    except ValueError:
        pass
    try:
        return float(arg)
    except ValueError:
        pass

    lowered = arg.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("nil", "none", "null"):
        return None
    return arg


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point for sending OSC messages."""
    parser = argparse.ArgumentParser(
        description="Send one OSC message over UDP"
    )
    parser.add_argument(
        'address',
        help='OSC address (e.g. /press)'
    )
    parser.add_argument(
        'args',
        nargs='*',
        help='Arguments: ints, floats, true/false, nil or strings'
    )
    parser.add_argument(
        '--host',
        default=DEFAULT_DESTINATION.host,
        help=f'Destination host (default: {DEFAULT_DESTINATION.host})'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=DEFAULT_DESTINATION.port,
        help=f'Destination port (default: {DEFAULT_DESTINATION.port})'
    )

    args = parser.parse_args(argv)
    values = [parse_argument(arg) for arg in args.args]

    if not send_osc(args.host, args.port, args.address, values):
        print(f"Not sent: {args.host}:{args.port} {args.address} {values}", file=sys.stderr)
        sys.exit(1)

    print(f"Sent to {args.host}:{args.port} → {args.address} {values}")


if __name__ == "__main__":
    main()
