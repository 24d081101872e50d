"""
Control settings normalization.

The device host stores one free-form settings record per placed control and
has used several key names for the same field over time. This module maps any
such record (possibly empty, partial or None) onto a frozen, fully-defaulted
settings value:

    KnobSettings  - triple knob: left / right / press addresses
    QuadSettings  - key: up to four messages fired on press or release

Every field is described by an ordered tuple of accepted keys; the first
present key wins. Numbers parse leniently and fall back to the default
instead of failing.
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, NamedTuple, Optional, Sequence, Tuple


# ============================================================================
# CONSTANTS
# ============================================================================

ACTION_KNOB = "gptcom.oscremote.knobtriple"
ACTION_QUAD = "gptcom.oscremote.quadpress"

KIND_KNOB = "knob"
KIND_QUAD = "quad"

MODE_SAME = "same"
MODE_DIFFERENT = "different"

SEND_ON_DOWN = "down"
SEND_ON_UP = "up"

QUAD_SLOTS = 4

_LEADING_INT = re.compile(r"^\s*([+-]?[0-9]+)")


class Destination(NamedTuple):
    """UDP destination of an OSC message."""
    host: str
    port: int


DEFAULT_DESTINATION = Destination("127.0.0.1", 8000)


# Accepted source keys per field, in priority order
KNOB_KEYS: Dict[str, Tuple[str, ...]] = {
    "receiver_mode": ("receiverMode",),
    "global_host": ("globalIp", "clientAddress", "ip"),
    "global_port": ("globalPort", "clientPort", "port"),
    "left_path": ("leftPath", "pathLeft"),
    "right_path": ("rightPath", "pathRight"),
    "press_path": ("pressPath", "pathPress"),
    "left_host": ("leftIp",),
    "left_port": ("leftPort",),
    "right_host": ("rightIp",),
    "right_port": ("rightPort",),
    "press_host": ("pressIp",),
    "press_port": ("pressPort",),
    "send_ticks_as_value": ("sendTicksAsValue",),
    "tick_multiplier": ("tickMultiplier",),
}

QUAD_KEYS: Dict[str, Tuple[str, ...]] = {
    "send_on": ("sendOn",),
    "receiver_mode": KNOB_KEYS["receiver_mode"],
    # No legacy aliases: quad records only ever used the global* keys
    "global_host": ("globalIp",),
    "global_port": ("globalPort",),
}


def slot_keys(index: int) -> Dict[str, Tuple[str, ...]]:
    """Keys of quad message slot ``index`` (0-based; stored 1-based)."""
    n = index + 1
    return {
        "path": (f"m{n}Path",),
        "host": (f"m{n}Ip",),
        "port": (f"m{n}Port",),
    }


# ============================================================================
# SETTINGS TYPES
# ============================================================================

@dataclass(frozen=True)
class KnobSettings:
    receiver_mode: str = MODE_SAME
    global_host: str = DEFAULT_DESTINATION.host
    global_port: int = DEFAULT_DESTINATION.port
    left_path: str = "/left"
    right_path: str = "/right"
    press_path: str = "/press"
    left_host: str = ""
    left_port: int = 0
    right_host: str = ""
    right_port: int = 0
    press_host: str = ""
    press_port: int = 0
    send_ticks_as_value: bool = False
    tick_multiplier: int = 1

    @property
    def global_destination(self) -> Destination:
        return Destination(self.global_host, self.global_port)

    def path_for(self, slot: str) -> str:
        return {
            "left": self.left_path,
            "right": self.right_path,
            "press": self.press_path,
        }.get(slot, "")

    def override_for(self, slot: str) -> Optional[Destination]:
        overrides = {
            "left": Destination(self.left_host, self.left_port),
            "right": Destination(self.right_host, self.right_port),
            "press": Destination(self.press_host, self.press_port),
        }
        return overrides.get(slot)


@dataclass(frozen=True)
class MessageSlot:
    """One programmable quad message; an empty path disables it."""
    path: str = ""
    host: str = ""
    port: int = 0

    @property
    def enabled(self) -> bool:
        return bool(self.path)


@dataclass(frozen=True)
class QuadSettings:
    send_on: str = SEND_ON_DOWN
    receiver_mode: str = MODE_SAME
    global_host: str = DEFAULT_DESTINATION.host
    global_port: int = DEFAULT_DESTINATION.port
    slots: Tuple[MessageSlot, ...] = (MessageSlot(),) * QUAD_SLOTS

    @property
    def global_destination(self) -> Destination:
        return Destination(self.global_host, self.global_port)

    @property
    def trigger_event(self) -> str:
        """Device event that fires the messages."""
        return "keyUp" if self.send_on == SEND_ON_UP else "keyDown"


# ============================================================================
# LENIENT FIELD READERS
# ============================================================================

def _is_present(value: Any) -> bool:
    return value is not None


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and len(value) > 0


def first_present(raw: Any, keys: Sequence[str], accept: Callable[[Any], bool] = _is_present) -> Any:
    """Return the value of the first key in ``keys`` that ``accept`` takes.

    Args:
        raw: Settings record; anything that is not a dict reads as empty
        keys: Accepted key names, highest priority first
        accept: Predicate deciding whether a stored value counts as present

    Returns:
        The first accepted value, or None if no key qualifies
    """
    if not isinstance(raw, dict):
        return None
    for key in keys:
        value = raw.get(key)
        if accept(value):
            return value
    return None


def parse_int(value: Any, default: int) -> int:
    """Parse an integer the lenient way a leading-digits parse does.

    Examples:
        >>> parse_int("9000", 0), parse_int("9000abc", 0), parse_int(12.7, 0)
        (9000, 9000, 12)
        >>> parse_int("abc", 5), parse_int(None, 5), parse_int(True, 5)
        (5, 5, 5)
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    if not match:
        return default
    return int(match.group(1))


def parse_bool(value: Any) -> bool:
    """True only for True, "true", 1 and "1"."""
    if value is True or value == "true" or value == "1":
        return True
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 1


def read_str(raw: Any, keys: Sequence[str], default: str) -> str:
    value = first_present(raw, keys, accept=_is_text)
    return default if value is None else value


def read_int(raw: Any, keys: Sequence[str], default: int) -> int:
    return parse_int(first_present(raw, keys), default)


def read_bool(raw: Any, keys: Sequence[str]) -> bool:
    return parse_bool(first_present(raw, keys))


def _read_mode(raw: Any, keys: Sequence[str]) -> str:
    mode = read_str(raw, keys, MODE_SAME)
    return MODE_DIFFERENT if mode == MODE_DIFFERENT else MODE_SAME


# ============================================================================
# NORMALIZERS
# ============================================================================

def normalize_knob(raw: Any, defaults: Destination = DEFAULT_DESTINATION) -> KnobSettings:
    """Normalize a triple-knob settings record. Never fails."""
    k = KNOB_KEYS
    tick_multiplier = read_int(raw, k["tick_multiplier"], 1)

    return KnobSettings(
        receiver_mode=_read_mode(raw, k["receiver_mode"]),
        global_host=read_str(raw, k["global_host"], defaults.host),
        global_port=read_int(raw, k["global_port"], defaults.port),
        left_path=read_str(raw, k["left_path"], "/left"),
        right_path=read_str(raw, k["right_path"], "/right"),
        press_path=read_str(raw, k["press_path"], "/press"),
        left_host=read_str(raw, k["left_host"], ""),
        left_port=read_int(raw, k["left_port"], 0),
        right_host=read_str(raw, k["right_host"], ""),
        right_port=read_int(raw, k["right_port"], 0),
        press_host=read_str(raw, k["press_host"], ""),
        press_port=read_int(raw, k["press_port"], 0),
        send_ticks_as_value=read_bool(raw, k["send_ticks_as_value"]),
        tick_multiplier=1 if tick_multiplier == 0 else tick_multiplier,
    )


def normalize_quad(raw: Any, defaults: Destination = DEFAULT_DESTINATION) -> QuadSettings:
    """Normalize a quad-message settings record. Never fails."""
    k = QUAD_KEYS
    send_on = read_str(raw, k["send_on"], SEND_ON_DOWN)

    slots = []
    for index in range(QUAD_SLOTS):
        keys = slot_keys(index)
        slots.append(MessageSlot(
            path=read_str(raw, keys["path"], ""),
            host=read_str(raw, keys["host"], ""),
            port=read_int(raw, keys["port"], 0),
        ))

    return QuadSettings(
        send_on=SEND_ON_UP if send_on == SEND_ON_UP else SEND_ON_DOWN,
        receiver_mode=_read_mode(raw, k["receiver_mode"]),
        global_host=read_str(raw, k["global_host"], defaults.host),
        global_port=read_int(raw, k["global_port"], defaults.port),
        slots=tuple(slots),
    )


_NORMALIZERS = {
    KIND_KNOB: normalize_knob,
    KIND_QUAD: normalize_quad,
}


def normalize(raw: Any, kind: str, defaults: Destination = DEFAULT_DESTINATION):
    """Normalize a settings record for a control kind ("knob" or "quad").

    Raises:
        ValueError: If kind is unknown
    """
    try:
        normalizer = _NORMALIZERS[kind]
    except KeyError:
        raise ValueError(f"Unknown control kind: {kind!r}") from None
    return normalizer(raw, defaults)
