#!/usr/bin/env python3
"""
Event Dispatcher - device events to OSC messages.

Receives decoded envelopes from the device channel, keeps the latest settings
snapshot per control instance, and turns knob and key events into OSC sends.

Routing (action, event):
    *, didReceiveSettings       -> store payload.settings, no OSC
    *, willAppear               -> store payload.settings if present, no OSC
    knobtriple, dialRotate      -> left/right address, optional [|ticks| * multiplier]
    knobtriple, dialDown        -> press address, no args (dialUp ignored)
    quadpress, keyDown / keyUp  -> slots 1-4 when the event matches sendOn
    anything else               -> ignored

Handling is synchronous and serial: sends go out on non-blocking sockets
and their outcome is only visible in the log and the statistics counters.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from oscdock.log import get_logger
from oscdock.osc import MessageStatistics, send_osc
from oscdock.routing import resolve
from oscdock.settings import (
    ACTION_KNOB,
    ACTION_QUAD,
    DEFAULT_DESTINATION,
    Destination,
    normalize_knob,
    normalize_quad,
    parse_int,
)

logger = get_logger(__name__)

# Device events
EVENT_DID_RECEIVE_SETTINGS = "didReceiveSettings"
EVENT_WILL_APPEAR = "willAppear"
EVENT_DIAL_ROTATE = "dialRotate"
EVENT_DIAL_DOWN = "dialDown"
EVENT_KEY_DOWN = "keyDown"
EVENT_KEY_UP = "keyUp"


@dataclass(frozen=True)
class Event:
    """Inbound event envelope from the device host."""
    event: str = ""
    action: str = ""
    context: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "Event":
        """Build an event from a decoded JSON object, tolerating missing keys."""
        payload = message.get("payload")
        return cls(
            event=str(message.get("event") or ""),
            action=str(message.get("action") or ""),
            context=message.get("context"),
            payload=payload if isinstance(payload, dict) else {},
        )

    @property
    def settings(self) -> Optional[Dict[str, Any]]:
        """Settings snapshot carried by the payload, if any."""
        settings = self.payload.get("settings")
        return settings if isinstance(settings, dict) else None


class SettingsCache:
    """Latest raw settings record per control instance.

    Entries are overwritten by newer snapshots and never removed; the number
    of contexts is bounded by the controls placed on the device.
    """

    def __init__(self):
        self._entries: Dict[str, Dict[str, Any]] = {}

    def update(self, context: str, settings: Optional[Dict[str, Any]]) -> None:
        self._entries[context] = dict(settings or {})

    def get(self, context: Optional[str]) -> Dict[str, Any]:
        """Settings for context; an unseen context starts out empty."""
        return self._entries.setdefault(context, {})

    def __contains__(self, context) -> bool:
        return context in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class EventDispatcher:
    """Translate device events into OSC messages.

    Args:
        cache: Settings cache owned by this dispatcher (default: new empty cache)
        sender: Callable(host, port, address, args) performing the send
        defaults: Global destination used when settings name none
        stats: Statistics counters (default: new tracker)
    """

    def __init__(
        self,
        cache: Optional[SettingsCache] = None,
        sender: Callable[..., Any] = send_osc,
        defaults: Destination = DEFAULT_DESTINATION,
        stats: Optional[MessageStatistics] = None,
    ):
        self.cache = cache if cache is not None else SettingsCache()
        self.sender = sender
        self.defaults = defaults
        self.stats = stats if stats is not None else MessageStatistics()

        self._handlers = {
            (ACTION_KNOB, EVENT_DIAL_ROTATE): self._on_knob_rotate,
            (ACTION_KNOB, EVENT_DIAL_DOWN): self._on_knob_press,
            (ACTION_QUAD, EVENT_KEY_DOWN): self._on_quad_key,
            (ACTION_QUAD, EVENT_KEY_UP): self._on_quad_key,
        }

    def handle(self, event: Union[Event, Dict[str, Any]]) -> None:
        """Process one inbound envelope to completion."""
        if isinstance(event, dict):
            event = Event.from_message(event)

        self.stats.increment('events_received')

        if event.event == EVENT_DID_RECEIVE_SETTINGS:
            self.cache.update(event.context, event.settings)
            self.stats.increment('settings_updates')
            logger.info(
                f"didReceiveSettings ctx={event.context} "
                f"{json.dumps(self.cache.get(event.context), default=str)}"
            )
            return

        if event.event == EVENT_WILL_APPEAR:
            if event.context and event.settings is not None:
                self.cache.update(event.context, event.settings)
                self.stats.increment('settings_updates')
            return

        handler = self._handlers.get((event.action, event.event))
        if handler is None:
            self.stats.increment('events_ignored')
            return
        handler(event)

    # ------------------------------------------------------------------------

    def _raw_settings(self, event: Event) -> Dict[str, Any]:
        """Settings in the payload win over the cached snapshot."""
        if event.settings is not None:
            self.cache.update(event.context, event.settings)
            return event.settings
        return self.cache.get(event.context)

    def _send(self, destination: Destination, address: str, args) -> None:
        if self.sender(destination.host, destination.port, address, args):
            self.stats.increment('messages_sent')
        else:
            self.stats.increment('messages_dropped')

    def _on_knob_rotate(self, event: Event) -> None:
        settings = normalize_knob(self._raw_settings(event), self.defaults)

        ticks = parse_int(event.payload.get("ticks"), 0)
        if ticks == 0:
            return

        slot = "left" if ticks < 0 else "right"
        # Separate left/right addresses carry a positive step
        step = abs(ticks) * settings.tick_multiplier
        args = [step] if settings.send_ticks_as_value else []
        self._send(resolve(settings, slot), settings.path_for(slot), args)

    def _on_knob_press(self, event: Event) -> None:
        settings = normalize_knob(self._raw_settings(event), self.defaults)
        self._send(resolve(settings, "press"), settings.press_path, [])

    def _on_quad_key(self, event: Event) -> None:
        settings = normalize_quad(self._raw_settings(event), self.defaults)
        if event.event != settings.trigger_event:
            return

        for index, slot in enumerate(settings.slots):
            if not slot.enabled:
                continue
            self._send(resolve(settings, index), slot.path, [])
