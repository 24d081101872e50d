"""
oscdock - StreamDock/StreamDeck control events to OSC over UDP.

Modules:
    osc: OSC packet encoding, one-shot UDP sending, statistics
    settings: Settings normalization for knob and key controls
    routing: Destination resolution per slot
    dispatcher: Device event to OSC message translation
    plugin: Device host WebSocket client and process entry point
    cli: Send a single OSC message from the command line
"""

__version__ = "0.1.0"

# Modules are imported on demand so that python -m oscdock.cli does not
# pull in the WebSocket stack.
# Use: from oscdock import osc, dispatcher, etc.
