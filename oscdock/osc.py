#!/usr/bin/env python3
"""
oscdock OSC Infrastructure - packet encoding, UDP sending and statistics.

Builds OSC 1.0 messages from an address and a plain Python argument list,
and sends each one as a single fire-and-forget UDP datagram.

Classes:
    - OscPacket: Immutable address + arguments, exposes the encoded datagram
    - DatagramClient: python-osc UDPClient that owns and closes its socket
    - MessageStatistics: Thread-safe message counter with formatted output

Functions:
    - encode(address, args): Serialize an OSC message to bytes
    - send_osc(host, port, address, args, log): Send one message, never raises
    - validate_port(port): Validate port in range 1-65535

Argument classification (content decides the type tag, not the origin):
    True / False       -> T / F   (no payload)
    None               -> N       (no payload)
    5, 5.0, -3         -> i       (int32, big-endian)
    5.5                -> f       (float32, big-endian)
    "text"             -> s       (NUL-terminated, padded to 4 bytes)
    anything else      -> s       (str() of the value)
"""

import math
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple
from pythonosc.parsing import osc_types
from pythonosc import udp_client

from oscdock.log import get_logger

logger = get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

# Port validation range
PORT_MIN = 1
PORT_MAX = 65535

# Representable ranges of the 4-byte numeric payloads
INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1
FLOAT32_MAX = 3.4028234663852886e38

# Type tags
TAG_INT = "i"
TAG_FLOAT = "f"
TAG_STRING = "s"
TAG_TRUE = "T"
TAG_FALSE = "F"
TAG_NIL = "N"


# ============================================================================
# ENCODING
# ============================================================================

def _write_string(value: str) -> bytes:
    # Lone surrogates (possible from JSON input) cannot be UTF-8 encoded
    value = value.encode("utf-8", "replace").decode("utf-8")
    return osc_types.write_string(value)


def classify(value: Any) -> Tuple[str, Any]:
    """Pick the OSC type tag for a Python value.

    Returns:
        Tuple of (type_tag, normalized_value). The value is converted to the
        form the tag's writer expects (int for 'i', str for 's').

    Examples:
        >>> classify(5.0)
        ('i', 5)
        >>> classify(5.5)
        ('f', 5.5)
        >>> classify(True)
        ('T', True)
    """
    # bool is an int subclass, check it first
    if value is True:
        return TAG_TRUE, value
    if value is False:
        return TAG_FALSE, value
    if value is None:
        return TAG_NIL, value
    if isinstance(value, str):
        return TAG_STRING, value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return TAG_STRING, str(value)
        if isinstance(value, int) or value.is_integer():
            if INT32_MIN <= value <= INT32_MAX:
                return TAG_INT, int(value)
        if abs(value) <= FLOAT32_MAX:
            return TAG_FLOAT, float(value)
        return TAG_STRING, str(value)
    return TAG_STRING, str(value)


def encode(address: str, args: Optional[Iterable[Any]] = None) -> bytes:
    """Serialize an OSC message.

    Layout: padded address, padded type-tag string (',' + one tag per
    argument), then the payload of every argument that has one. The address
    is written as given; callers are responsible for the leading '/'.

    Args:
        address: OSC address (e.g. "/press")
        args: Argument values, see module docstring for classification

    Returns:
        Encoded datagram, always a multiple of 4 bytes long
    """
    tags = ","
    payload = b""
    for value in args or ():
        tag, value = classify(value)
        tags += tag
        if tag == TAG_INT:
            payload += osc_types.write_int(value)
        elif tag == TAG_FLOAT:
            payload += osc_types.write_float(value)
        elif tag == TAG_STRING:
            payload += _write_string(value)

    return _write_string(str(address)) + _write_string(tags) + payload


@dataclass(frozen=True)
class OscPacket:
    """Immutable OSC message.

    Exposes ``dgram`` like python-osc's OscMessage so it can be handed
    straight to a python-osc client.
    """
    address: str
    args: Tuple[Any, ...] = ()

    @property
    def dgram(self) -> bytes:
        return encode(self.address, self.args)

    @property
    def size(self) -> int:
        return len(self.dgram)


# ============================================================================
# ONE-SHOT UDP CLIENT
# ============================================================================

class DatagramClient(udp_client.UDPClient):
    """Send-only UDP client whose socket lives for one `with` block.

    python-osc's UDPClient resolves the destination, opens a non-blocking
    socket with an ephemeral local port and sends with sendto(), so a send
    never waits for delivery. This subclass adds explicit close and context
    manager support so the socket is released on every exit path.

    Args:
        address: Target host name or IP address
        port: Target UDP port
    """

    def close(self):
        """Close the UDP socket."""
        if hasattr(self, '_sock') and self._sock:
            self._sock.close()

    def __enter__(self):
        """Context manager support."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Ensure socket cleanup on context exit."""
        self.close()
        return False


def _is_valid_port(port: Any) -> bool:
    return (
        isinstance(port, int)
        and not isinstance(port, bool)
        and PORT_MIN <= port <= PORT_MAX
    )


def send_osc(host: str, port: int, address: str, args=None, log=logger) -> bool:
    """Send one OSC message as a single UDP datagram.

    Malformed destinations (empty host or address, port outside 1-65535)
    are dropped without touching the network. Resolution and transport
    errors (including hosts the resolver rejects outright) are logged
    and swallowed; there is no retry.

    Args:
        host: Destination host
        port: Destination UDP port
        address: OSC address
        args: Argument values (default: none)
        log: Logger receiving the send and error lines

    Returns:
        True if the datagram was handed to the socket, False otherwise
    """
    if not isinstance(address, str) or not address:
        log.debug(f"drop: no address (host={host!r} port={port!r})")
        return False
    if not isinstance(host, str) or not host:
        log.debug(f"drop: no host for {address}")
        return False
    if not _is_valid_port(port):
        log.debug(f"drop: invalid port {port!r} for {address}")
        return False

    args = list(args or [])
    packet = OscPacket(address, tuple(args))
    log.info(f"send {host}:{port} {address} args={args} bytes={packet.size}")

    try:
        with DatagramClient(host, port) as client:
            client.send(packet)
    except (OSError, ValueError) as e:
        log.error(f"ERROR send {host}:{port} {address} -> {e}")
        return False

    return True


# ============================================================================
# VALIDATION FUNCTIONS
# ============================================================================

def validate_port(port: int) -> None:
    """Validate UDP port number is in valid range.

    Args:
        port: Port number to validate

    Raises:
        ValueError: If port is not an integer in range 1-65535

    Examples:
        >>> validate_port(8000)  # OK
        >>> validate_port(0)  # Raises ValueError
        >>> validate_port(70000)  # Raises ValueError
    """
    if not _is_valid_port(port):
        raise ValueError(f"Port must be in range {PORT_MIN}-{PORT_MAX}, got {port}")


# ============================================================================
# MESSAGE STATISTICS
# ============================================================================

class MessageStatistics:
    """Thread-safe message statistics tracker with formatted output.

    Counters used by the dispatcher:
        - events_received: Envelopes handed to the dispatcher
        - events_ignored: Envelopes with no matching rule
        - settings_updates: Settings snapshots stored in the cache
        - messages_sent: Datagrams handed to a socket
        - messages_dropped: Sends skipped or failed

    Examples:
        >>> stats = MessageStatistics()
        >>> stats.increment('messages_sent')
        >>> stats.log_stats(logger, "Dispatcher")
    """

    def __init__(self):
        """Initialize statistics tracker with empty counters."""
        self.counters = {}
        self.lock = threading.Lock()

    def increment(self, counter_name: str, amount: int = 1) -> None:
        """Increment a counter by specified amount (thread-safe).

        Creates the counter if it doesn't exist.
        """
        with self.lock:
            self.counters[counter_name] = self.counters.get(counter_name, 0) + amount

    def get(self, counter_name: str) -> int:
        """Get current value of a counter, 0 if it doesn't exist."""
        with self.lock:
            return self.counters.get(counter_name, 0)

    def snapshot(self) -> dict:
        with self.lock:
            return dict(self.counters)

    def format_stats(self, title: str = "STATISTICS") -> str:
        """Format counters as a framed block.

        Output format:
            ============================================================
            TITLE
            ============================================================
            Counter Name: value
            ...
            ============================================================
        """
        snapshot = self.snapshot()

        lines = ["=" * 60, title, "=" * 60]
        for name in sorted(snapshot.keys()):
            # snake_case to Title Case for display
            display_name = name.replace('_', ' ').title()
            lines.append(f"{display_name}: {snapshot[name]}")
        lines.append("=" * 60)
        return "\n".join(lines)

    def log_stats(self, log=logger, title: str = "STATISTICS") -> None:
        """Write the formatted statistics block to a logger, line by line."""
        for line in self.format_stats(title).splitlines():
            log.info(line)
