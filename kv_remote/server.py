#!/usr/bin/env python3
"""
kv-remote Server Entry Point

Serves an in-memory store over the kv-remote protocol.

Usage:
    python -m kv_remote.server                      # Default settings (127.0.0.1:9000)
    python -m kv_remote.server --port 8080          # Custom port
    python -m kv_remote.server --socket /tmp/kv.sock  # Unix-domain socket
    python -m kv_remote.server --read-only          # Reject writes
    python -m kv_remote.server --debug              # Enable debug logging

Environment Variables:
    KV_REMOTE_HOST       - Server bind address
    KV_REMOTE_PORT       - Server port
    KV_REMOTE_SOCKET     - Unix-domain socket path (overrides host/port)
    KV_REMOTE_MAX_KEYS   - Maximum number of keys
    KV_REMOTE_DEBUG      - Enable debug mode (true/false)
    KV_REMOTE_LOG_LEVEL  - Log level when not in debug mode
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .cache.store import MemoryStore
from .config.settings import settings
from .network.tcp_server import KVServer


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="kv-remote: serve a key-value store over a socket",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--host",
        type=str,
        default=settings.HOST,
        help="Host address to bind to",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help="Port number to listen on",
    )

    parser.add_argument(
        "--socket",
        type=str,
        default=settings.SOCKET_PATH,
        help="Unix-domain socket path (overrides --host/--port)",
    )

    parser.add_argument(
        "--max-keys",
        type=positive_int,
        default=settings.MAX_KEYS,
        help="Maximum number of keys in the store",
    )

    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Reject store, delete and clear",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the server."""
    args = parse_args(argv)

    setup_logging(debug=args.debug)
    logger = logging.getLogger(__name__)

    store = MemoryStore(max_size=args.max_keys, read_only=args.read_only)
    server = KVServer(host=args.host, port=args.port, path=args.socket, store=store)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    async def shutdown(sig: signal.Signals) -> None:
        """Handle shutdown signal."""
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        await server.stop()

    # Register signal handlers (Unix only)
    if sys.platform != 'win32':
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda s=sig: asyncio.ensure_future(shutdown(s))
            )

    logger.info("Starting kv-remote server")
    if args.socket:
        logger.info(f"  Socket: {args.socket}")
    else:
        logger.info(f"  Host: {args.host}")
        logger.info(f"  Port: {args.port}")
    logger.info(f"  Max keys: {args.max_keys}")
    logger.info(f"  Read-only: {args.read_only}")

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        loop.run_until_complete(server.stop())
    except Exception as e:
        logger.error(f"Server error: {e}")
        raise
    finally:
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        logger.info("Server shutdown complete")


if __name__ == "__main__":
    main()
