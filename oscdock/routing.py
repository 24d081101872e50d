"""Destination resolution for knob and quad slots."""

from typing import Union

from oscdock.settings import (
    Destination,
    KnobSettings,
    QuadSettings,
    MODE_DIFFERENT,
)

KNOB_SLOTS = ("left", "right", "press")


def _is_complete(destination) -> bool:
    """An override counts only with both a host and a positive port."""
    if destination is None:
        return False
    host, port = destination
    return bool(host) and isinstance(port, int) and port > 0


def resolve(settings: Union[KnobSettings, QuadSettings], slot) -> Destination:
    """Pick the (host, port) an OSC message for ``slot`` goes to.

    In "same" mode every slot shares the global destination. In "different"
    mode a slot uses its own destination when it is fully configured; a
    partial override is treated as absent and falls back to global.

    Args:
        settings: Normalized knob or quad settings
        slot: "left" / "right" / "press" for a knob, 0-3 for a quad

    Returns:
        Destination(host, port)

    Examples:
        >>> from oscdock.settings import normalize_quad
        >>> s = normalize_quad({"receiverMode": "different",
        ...                     "m1Ip": "10.0.0.5", "m1Port": 9000})
        >>> resolve(s, 0)
        Destination(host='10.0.0.5', port=9000)
        >>> resolve(s, 1)
        Destination(host='127.0.0.1', port=8000)
    """
    if settings.receiver_mode == MODE_DIFFERENT:
        override = None
        if isinstance(settings, KnobSettings):
            override = settings.override_for(slot)
        elif isinstance(slot, int) and 0 <= slot < len(settings.slots):
            entry = settings.slots[slot]
            override = Destination(entry.host, entry.port)

        if _is_complete(override):
            return override

    return settings.global_destination
