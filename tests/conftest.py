"""Pytest fixtures for oscdock tests.

Provides:
- OSCMessageCapture: Thread-safe OSC capture server on an ephemeral port
- osc_capture: Started capture, stopped on teardown
- recording_sender: Stand-in for send_osc that records calls
- knob_event / quad_event: Envelope builders
"""

import threading
import time
from collections import deque

import pytest
from pythonosc import dispatcher
from pythonosc.osc_server import ThreadingOSCUDPServer

from oscdock.settings import ACTION_KNOB, ACTION_QUAD


class OSCMessageCapture:
    """Captures OSC messages for end-to-end checks.

    Binds 127.0.0.1 on an ephemeral port; read ``port`` after start().

    Example:
        capture = OSCMessageCapture()
        capture.start()
        send_osc("127.0.0.1", capture.port, "/press", [])
        ts, addr, args = capture.wait_for_message("/press", timeout=2.0)
        capture.stop()
    """

    def __init__(self, host: str = "127.0.0.1"):
        self.host = host
        self.port = None
        self.messages = deque(maxlen=1000)
        self.lock = threading.Lock()
        self.server = None
        self.server_thread = None

    def start(self):
        """Start capture server in a daemon thread."""
        disp = dispatcher.Dispatcher()
        disp.set_default_handler(self._capture_handler)

        self.server = ThreadingOSCUDPServer((self.host, 0), disp)
        self.port = self.server.server_address[1]

        self.server_thread = threading.Thread(target=self.server.serve_forever)
        self.server_thread.daemon = True
        self.server_thread.start()
        time.sleep(0.05)  # Allow server to start

    def stop(self):
        if self.server:
            self.server.shutdown()
            self.server.server_close()

    def _capture_handler(self, address, *args):
        with self.lock:
            self.messages.append((time.time(), address, args))

    def wait_for_message(self, address: str, timeout: float = 2.0):
        """Wait for a message with exactly this address.

        Raises:
            TimeoutError: If no matching message arrives within timeout
        """
        start = time.time()
        while time.time() - start < timeout:
            with self.lock:
                for ts, addr, args in self.messages:
                    if addr == address:
                        return (ts, addr, args)
            time.sleep(0.02)
        raise TimeoutError(f"No message for {address} within {timeout}s")

    def wait_for_count(self, count: int, timeout: float = 2.0):
        """Wait until at least ``count`` messages arrived; return them in order."""
        start = time.time()
        while time.time() - start < timeout:
            with self.lock:
                if len(self.messages) >= count:
                    return list(self.messages)
            time.sleep(0.02)
        raise TimeoutError(f"Expected {count} messages within {timeout}s")


class RecordingSender:
    """Records (host, port, address, args) instead of sending."""

    def __init__(self, result: bool = True):
        self.calls = []
        self.result = result

    def __call__(self, host, port, address, args=None, log=None):
        self.calls.append((host, port, address, list(args or [])))
        return self.result


@pytest.fixture
def osc_capture():
    """Started OSC capture server, stopped on teardown."""
    capture = OSCMessageCapture()
    capture.start()
    yield capture
    capture.stop()


@pytest.fixture
def recording_sender():
    return RecordingSender()


def _envelope(action, event, context, payload):
    return {
        "event": event,
        "action": action,
        "context": context,
        "payload": payload,
    }


@pytest.fixture
def knob_event():
    """Build a knob envelope: knob_event("dialRotate", ticks=2, settings={...})."""
    def build(event, context="knob-ctx", **payload):
        return _envelope(ACTION_KNOB, event, context, payload)
    return build


@pytest.fixture
def quad_event():
    """Build a quad key envelope: quad_event("keyDown", settings={...})."""
    def build(event, context="quad-ctx", **payload):
        return _envelope(ACTION_QUAD, event, context, payload)
    return build
