"""Command-line interface for termbridge.

Provides the main entry point for opening an interactive session through
the backend from the local terminal, and for checking that a backend is
reachable.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import os
import signal
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="termbridge",
        description="Open a remote shell through a web SSH backend",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/termbridge.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--server", type=str, default=None,
        help="Backend base URL (overrides server.base_url)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    connect_parser = subparsers.add_parser("connect", help="Open an interactive session")
    connect_parser.add_argument("host", help="Target host name or address")
    connect_parser.add_argument("-u", "--user", required=True, help="Remote user name")
    connect_parser.add_argument(
        "-p", "--port", type=int, default=None,
        help="Target SSH port (default: bridge.default_port)",
    )
    connect_parser.add_argument(
        "-i", "--identity", type=Path, default=None,
        help="Private key file; the password prompt is skipped when given",
    )
    connect_parser.add_argument(
        "--passphrase", action="store_true",
        help="Prompt for the private key's passphrase",
    )

    subparsers.add_parser("health", help="Check that the backend is reachable")

    return parser.parse_args(argv)


def _build_request(settings, args):
    """Collect credentials and build the ConnectionRequest."""
    from termbridge.domain.models import ConnectionRequest

    password = None
    privatekey = None
    passphrase = None
    if args.identity is not None:
        privatekey = args.identity.read_text()
        if args.passphrase:
            passphrase = getpass.getpass(f"Passphrase for {args.identity}: ")
    else:
        password = os.environ.get("TERMBRIDGE_PASSWORD") or getpass.getpass(
            f"{args.user}@{args.host}'s password: "
        )

    return ConnectionRequest(
        hostname=args.host,
        port=args.port or settings.bridge.default_port,
        username=args.user,
        password=password,
        privatekey=privatekey,
        passphrase=passphrase,
    )


async def _connect(settings, args) -> int:
    """Run one interactive session until it ends."""
    from termbridge.bridge.session import SessionBridge
    from termbridge.bridge.view import ConsoleView
    from termbridge.handshake.client import HandshakeClient
    from termbridge.transport.base import TransportChannel
    from termbridge.transport.websocket_channel import WebSocketChannel
    from termbridge.widget.tty import LocalTerminalWidget

    try:
        request = _build_request(settings, args)
    except OSError as e:
        print(f"Cannot read key file: {e}", file=sys.stderr)
        return 1
    server = settings.server
    escape_char = settings.bridge.escape_char or None
    hint = f"press Ctrl-{chr(ord(escape_char) + 64)} to disconnect" if escape_char else ""
    view = ConsoleView(hint=hint)
    channels: list[TransportChannel] = []

    def make_channel() -> TransportChannel:
        channel = WebSocketChannel(
            open_timeout=server.open_timeout,
            ping_interval=server.ping_interval,
        )
        channels.append(channel)
        return channel

    async with HandshakeClient(
        base_url=server.base_url,
        timeout=server.http_timeout,
        connect_path=server.connect_path,
        channel_path=server.channel_path,
        health_path=server.health_path,
        verify=server.verify_tls,
    ) as handshake:
        bridge = SessionBridge(
            handshake=handshake,
            channel_factory=make_channel,
            widget_factory=lambda: LocalTerminalWidget(
                escape_char=escape_char,
                on_escape=bridge.disconnect,
            ),
            view=view,
            resize_debounce=settings.bridge.resize_debounce,
        )

        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGWINCH, bridge.notify_container_resized)
        try:
            if await bridge.submit(request):
                await bridge.wait_idle()
        finally:
            loop.remove_signal_handler(signal.SIGWINCH)
            bridge.disconnect()
            for channel in channels:
                await channel.wait_closed()

    return 0 if bridge.last_error is None else 1


async def _health(settings) -> int:
    """Print the backend's health document."""
    from termbridge.domain.errors import HandshakeError
    from termbridge.handshake.client import HandshakeClient

    server = settings.server
    async with HandshakeClient(
        base_url=server.base_url,
        timeout=server.http_timeout,
        health_path=server.health_path,
        verify=server.verify_tls,
    ) as client:
        try:
            doc = await client.health()
        except HandshakeError as e:
            print(f"{server.base_url}: {e}", file=sys.stderr)
            return 1
    print(f"{server.base_url}: {json.dumps(doc)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the termbridge CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return 2

    from termbridge.config.settings import load_settings
    from termbridge.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"
    if args.server:
        settings.server.base_url = args.server

    setup_logging(settings.logging)

    if args.command == "connect":
        logger.info("Connecting to %s@%s via %s", args.user, args.host, settings.server.base_url)
        return asyncio.run(_connect(settings, args))

    elif args.command == "health":
        return asyncio.run(_health(settings))

    return 2


if __name__ == "__main__":
    sys.exit(main())
