"""
kv-remote Configuration Settings

This module contains all configuration constants shared by the client
channel and the server. Values can be overridden through environment
variables read at import time.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _optional_float(name: str) -> Optional[float]:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else None


@dataclass
class Settings:
    """Client and server configuration settings."""

    # Network settings
    HOST: str = os.environ.get("KV_REMOTE_HOST", "127.0.0.1")
    PORT: int = int(os.environ.get("KV_REMOTE_PORT", "9000"))
    SOCKET_PATH: Optional[str] = os.environ.get("KV_REMOTE_SOCKET") or None

    # Engine settings (bundled in-memory store)
    MAX_KEYS: int = int(os.environ.get("KV_REMOTE_MAX_KEYS", "10000"))

    # Framing settings
    MAX_FRAME_SIZE: int = 64 * 1024 * 1024
    READ_BUFFER_SIZE: int = 64 * 1024

    # Client settings
    CLIENT_TIMEOUT: Optional[float] = _optional_float("KV_REMOTE_TIMEOUT")  # None blocks forever

    # Logging settings
    DEBUG: bool = os.environ.get("KV_REMOTE_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("KV_REMOTE_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
