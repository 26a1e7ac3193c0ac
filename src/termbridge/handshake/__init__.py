"""Handshake module for termbridge.

Negotiates a session with the backend over HTTP before the persistent
channel is opened.

Public API:
    HandshakeClient -- httpx-based handshake client
"""

from termbridge.handshake.client import HandshakeClient

__all__ = ["HandshakeClient"]
