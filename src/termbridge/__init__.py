"""termbridge -- Session bridge for browser-style SSH terminals.

This package implements the client side of a web SSH terminal: it
negotiates a session with an SSH-capable backend over HTTP, upgrades to
a WebSocket channel, and shuttles keystrokes, geometry changes and
remote output between that channel and a terminal widget while keeping
the UI in step with the session lifecycle.
"""

__version__ = "0.1.0"
