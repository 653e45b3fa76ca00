#!/usr/bin/env python3
"""
Interactive Client for kv-remote

A command-line client for manually exercising a kv-remote server through
a Channel.

Usage:
    kv-remote-client                        # Connect to 127.0.0.1:9000
    kv-remote-client --host 1.2.3.4         # Connect to specific host
    kv-remote-client --socket /tmp/kv.sock  # Connect over a Unix socket

Commands:
    key? <key>                    - Check if key exists
    load <key>                    - Retrieve a value
    store <key> <value> [expires] - Store a value (not acknowledged)
    delete <key>                  - Delete a key
    clear                         - Remove every key
    help                          - Show this help
    reconnect                     - Open a new connection
    exit                          - Exit client
"""

import argparse
import sys

# Enable command history with arrow keys (works on Unix systems)
try:
    import readline  # noqa: F401
except ImportError:
    pass  # readline not available on Windows by default

from .config.settings import settings
from .network.channel import Channel, connect
from .protocol.commands import ABSENT
from .protocol.errors import ChannelConnectionError, KVRemoteError

HELP = """
kv-remote Commands:
-------------------
  key? <key>                     Check if a key exists (true/false)
  load <key>                     Retrieve the value for a key
  store <key> <value> [expires]  Store a value, optionally expiring after N seconds
  delete <key>                   Delete a key (true if it was present)
  clear                          Remove every key

Client Commands:
----------------
  help                           Show this help message
  reconnect                      Close and reopen the connection
  exit                           Exit the client
"""


class UsageError(ValueError):
    """A command line could not be understood."""


def execute_line(channel: Channel, line: str) -> str:
    """
    Run one protocol command line on channel and return the text to print.

    Raises:
        UsageError: if the command or its arguments are invalid
        KVRemoteError: if the channel operation fails
    """
    parts = line.split()
    if not parts:
        raise UsageError("empty command")

    name, args = parts[0].lower(), parts[1:]

    if name == "key?" and len(args) == 1:
        return "true" if channel.key_exists(args[0]) else "false"

    if name == "load" and len(args) == 1:
        value = channel.load(args[0])
        return "(absent)" if value is ABSENT else str(value)

    if name == "store" and len(args) in (2, 3):
        options = {}
        if len(args) == 3:
            try:
                options["expires"] = int(args[2])
            except ValueError:
                raise UsageError(f"expires must be an integer, got {args[2]!r}") from None
        channel.store(args[0], args[1], options)
        return "OK"

    if name == "delete" and len(args) == 1:
        return "true" if channel.delete(args[0]) else "false"

    if name == "clear" and not args:
        channel.clear()
        return "OK"

    raise UsageError(f"invalid command: {line.strip()} (type 'help')")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Interactive client for kv-remote"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=settings.HOST,
        help=f"Server host (default: {settings.HOST})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help=f"Server port (default: {settings.PORT})"
    )
    parser.add_argument(
        "--socket",
        type=str,
        default=settings.SOCKET_PATH,
        help="Unix-domain socket path (overrides --host/--port)"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.CLIENT_TIMEOUT,
        help="Socket timeout in seconds (default: wait forever)"
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    address = args.socket or (args.host, args.port)

    print("kv-remote Client")
    print("================")
    print(f"Connecting to {address}...")

    try:
        channel = connect(address, timeout=args.timeout)
    except ChannelConnectionError as e:
        print(f"Connection error: {e}")
        print("Failed to connect. Is the server running?")
        print("  Try: kv-remote-server")
        sys.exit(1)

    print("Connected! Type 'help' for commands.\n")

    try:
        while True:
            try:
                command = input(">>> ").strip()
            except EOFError:
                print("\nGoodbye!")
                break

            if not command:
                continue

            lower_cmd = command.lower()

            if lower_cmd == "help":
                print(HELP)
                continue

            if lower_cmd in ("exit", "quit"):
                print("Goodbye!")
                break

            if lower_cmd == "reconnect":
                if not channel.closed:
                    channel.close()
                try:
                    channel = connect(address, timeout=args.timeout)
                    print("Reconnected!")
                except ChannelConnectionError as e:
                    print(f"Reconnection failed: {e}")
                continue

            try:
                print(execute_line(channel, command))
            except UsageError as e:
                print(f"ERROR: {e}")
            except ChannelConnectionError as e:
                print(f"ERROR: {e}")
                print("Connection lost; type 'reconnect' to open a new one.")
            except KVRemoteError as e:
                print(f"ERROR: {e}")

    except KeyboardInterrupt:
        print("\n\nInterrupted. Goodbye!")
    finally:
        if not channel.closed:
            channel.close()


if __name__ == "__main__":
    main()
