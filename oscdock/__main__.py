#!/usr/bin/env python3
"""
Entry point used by the device host.

Usage:
    python -m oscdock -port <port> -pluginUUID <uuid> -registerEvent <event> -info <json>
"""

from oscdock.plugin import main

main()
