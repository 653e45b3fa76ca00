"""
Integration Tests

End-to-end tests that verify the channel, codec, server and engine
work together.

Run with: python -m pytest tests/test_integration.py -v
"""

import asyncio
import time
import pytest

from kv_remote import ABSENT, connect
from kv_remote.server import parse_args
from tests.conftest import AsyncFrameClient


@pytest.mark.integration
class TestEndToEnd:
    """End-to-end tests through the blocking Channel."""

    def test_complete_workflow(self, channel):
        """Test a complete user workflow."""
        # Create multiple keys
        channel.store("user:1", {"name": "alice"})
        channel.store("user:2", {"name": "bob"})
        channel.store("user:3", {"name": "charlie"})

        # Read all keys
        assert channel.load("user:1") == {"name": "alice"}
        assert channel.load("user:2") == {"name": "bob"}
        assert channel.load("user:3") == {"name": "charlie"}

        # Check existence
        assert channel.key_exists("user:1") is True
        assert channel.key_exists("user:99") is False

        # Update a key
        channel.store("user:1", {"name": "alice", "admin": True})
        assert channel.load("user:1") == {"name": "alice", "admin": True}

        # Delete a key
        assert channel.delete("user:2") is True
        assert channel.load("user:2") is ABSENT
        assert channel.key_exists("user:2") is False

        # Clear everything
        channel.clear()
        assert channel.load("user:1") is ABSENT

    @pytest.mark.slow
    def test_expires_through_server(self, channel):
        """Test the expires option through the server."""
        channel.store("tempkey", "tempvalue", {"expires": 1})
        assert channel.load("tempkey") == "tempvalue"

        time.sleep(1.5)

        assert channel.load("tempkey") is ABSENT

    def test_multiple_channels_shared_state(self, running_server):
        """Test data written on one channel is visible on another."""
        address = (running_server.host, running_server.port)
        with connect(address, timeout=5) as writer, connect(address, timeout=5) as reader:
            writer.store("shared", b"\x01\x02")
            # Round trip on the writer orders the store before the read
            assert writer.key_exists("shared") is True
            assert reader.load("shared") == b"\x01\x02"

    def test_rapid_operations(self, channel):
        """Test many operations on one channel, past the engine's capacity."""
        for i in range(500):
            channel.store(f"key{i}", i)

        # Fixture engine holds 100 keys; older ones were evicted
        for i in range(400, 500):
            assert channel.load(f"key{i}") == i
        assert sum(1 for i in range(400) if channel.key_exists(f"key{i}")) == 0

    def test_large_value(self, channel):
        """Test a value spanning many socket reads."""
        value = bytes(range(256)) * 4096
        channel.store("big", value)
        assert channel.load("big") == value


@pytest.mark.asyncio
@pytest.mark.integration
class TestStress:
    """Stress tests against the async server."""

    async def test_high_connection_count(self, server, server_port):
        """Test many concurrent connections each keep their own order."""
        async def session(n: int) -> bool:
            async with AsyncFrameClient('127.0.0.1', server_port) as client:
                await client.send(["store", f"k{n}", n, {}])
                return await client.request(["load", f"k{n}", {}]) == n

        results = await asyncio.gather(*(session(n) for n in range(50)))
        assert all(results)
        assert server.get_stats()["total_connections"] == 50


class TestServerCli:
    """Test server command line parsing."""

    def test_defaults(self):
        """Test defaults come from settings."""
        args = parse_args([])
        assert args.port == 9000
        assert args.read_only is False

    def test_socket_and_read_only(self):
        """Test socket path and read-only flags."""
        args = parse_args(["--socket", "/tmp/kv.sock", "--read-only", "--max-keys", "5"])
        assert args.socket == "/tmp/kv.sock"
        assert args.read_only is True
        assert args.max_keys == 5

    @pytest.mark.parametrize("value", ["0", "-3", "many"])
    def test_max_keys_must_be_positive(self, value):
        """Test --max-keys rejects counts below one."""
        with pytest.raises(SystemExit):
            parse_args(["--max-keys", value])
