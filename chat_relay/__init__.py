"""Streaming chat relay: server-side event-stream relay and client-side consumer."""

__version__ = "0.1.0"
