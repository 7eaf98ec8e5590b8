"""Blocking reverse proxy for WebSocket upgrades, with an echo server and an interactive client."""

__version__ = "0.1.0"