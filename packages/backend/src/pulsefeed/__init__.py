"""PulseFeed: live contract discovery feed.

Relays new-contract events from the scanner to WebSocket clients, serves
cached token metadata, and validates license keys.
"""

__version__ = "0.1.0"
