"""
Tests for direct-tcpip tunnels, the TCP dialer and the forwarding policy.
"""

import asyncio
import socket

import pytest

from burrow.core.domain.channels import DirectTcpIpTarget
from burrow.core.exceptions import ChannelOpenRejected, StreamClosedError
from burrow.core.services.tunnel_handler import TunnelHandler, TunnelOpener
from burrow.infrastructure.net.tcp import PatternForwardPolicy, SocketStream, TcpDialer


async def _echo(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    while True:
        data = await reader.read(1024)
        if not data:
            break
        writer.write(data)
        await writer.drain()
    writer.close()


@pytest.fixture
async def echo_server():
    server = await asyncio.start_server(_echo, "127.0.0.1", 0)
    yield server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()


def _unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestTunnelHandler:
    """Test cases for TunnelHandler."""

    @pytest.mark.asyncio
    async def test_bridges_channel_and_upstream(self, memory_stream) -> None:
        channel, upstream = memory_stream("channel"), memory_stream("upstream")
        tunnel = TunnelHandler("t-1", DirectTcpIpTarget("db", 5432), upstream)

        tunnel.attach(channel)
        channel.feed(b"query")
        await upstream.wait_written(b"query")
        upstream.feed(b"result")
        await channel.wait_written(b"result")

        # Upstream closes its side
        upstream.feed_eof()
        await asyncio.wait_for(tunnel.wait_closed(), 2.0)

        assert tunnel.is_closed
        assert channel.is_closed
        assert tunnel.bridge is not None
        assert tunnel.bridge.teardowns == 1

    @pytest.mark.asyncio
    async def test_attach_twice(self, memory_stream) -> None:
        tunnel = TunnelHandler("t-1", DirectTcpIpTarget("db", 5432), memory_stream())
        tunnel.attach(memory_stream())

        with pytest.raises(RuntimeError):
            tunnel.attach(memory_stream())

        await tunnel.close()

    @pytest.mark.asyncio
    async def test_close_before_attach(self, memory_stream) -> None:
        upstream = memory_stream("upstream")
        tunnel = TunnelHandler("t-1", DirectTcpIpTarget("db", 5432), upstream)

        await tunnel.close()

        assert upstream.is_closed

    @pytest.mark.asyncio
    async def test_close_after_attach(self, memory_stream) -> None:
        channel, upstream = memory_stream("channel"), memory_stream("upstream")
        tunnel = TunnelHandler("t-1", DirectTcpIpTarget("db", 5432), upstream)
        tunnel.attach(channel)

        await asyncio.wait_for(tunnel.close(), 2.0)

        assert channel.is_closed
        assert upstream.is_closed


class TestTunnelOpener:
    """Test cases for TunnelOpener."""

    @pytest.mark.asyncio
    async def test_open_dials_destination(self, dialer) -> None:
        opener = TunnelOpener(dialer)

        tunnel = await opener.open("t-1", "alice", DirectTcpIpTarget("example.com", 443))

        assert dialer.dials == [("example.com", 443)]
        assert tunnel.tunnel_id == "t-1"
        await tunnel.close()

    @pytest.mark.asyncio
    async def test_policy_veto_skips_dial(self, dialer) -> None:
        opener = TunnelOpener(dialer, PatternForwardPolicy(False))

        with pytest.raises(ChannelOpenRejected):
            await opener.open("t-1", "alice", DirectTcpIpTarget("example.com", 443))

        assert dialer.dials == []


class TestPatternForwardPolicy:
    """Test cases for PatternForwardPolicy."""

    def test_disabled(self) -> None:
        policy = PatternForwardPolicy(False, ["*"])
        assert policy.permits("alice", DirectTcpIpTarget("localhost", 80)) is False

    def test_no_patterns_allows_everything(self) -> None:
        policy = PatternForwardPolicy(True)
        assert policy.permits("alice", DirectTcpIpTarget("anywhere.example", 1234)) is True

    def test_patterns(self) -> None:
        policy = PatternForwardPolicy(True, ["localhost:*", "*.internal:5432"])

        assert policy.permits("alice", DirectTcpIpTarget("localhost", 8080)) is True
        assert policy.permits("alice", DirectTcpIpTarget("db.internal", 5432)) is True
        assert policy.permits("alice", DirectTcpIpTarget("db.internal", 22)) is False
        assert policy.permits("alice", DirectTcpIpTarget("example.com", 80)) is False


class TestTcpDialer:
    """Test cases for TcpDialer and SocketStream."""

    @pytest.mark.asyncio
    async def test_dial_and_echo(self, echo_server: int) -> None:
        stream = await TcpDialer(timeout=5.0).dial("127.0.0.1", echo_server)
        assert isinstance(stream, SocketStream)

        await stream.write(b"hello")
        received = b""
        while len(received) < 5:
            chunk = await asyncio.wait_for(stream.read(1024), 2.0)
            assert chunk
            received += chunk
        assert received == b"hello"

        await stream.write_eof()
        assert await asyncio.wait_for(stream.read(1024), 2.0) == b""

        await stream.close()
        assert stream.is_closed
        assert await stream.read(1024) == b""
        with pytest.raises(StreamClosedError):
            await stream.write(b"late")

    @pytest.mark.asyncio
    async def test_refused(self) -> None:
        with pytest.raises(OSError):
            await TcpDialer(timeout=5.0).dial("127.0.0.1", _unused_port())

    @pytest.mark.asyncio
    async def test_opener_reports_refusal(self) -> None:
        opener = TunnelOpener(TcpDialer(timeout=5.0))
        port = _unused_port()

        with pytest.raises(ChannelOpenRejected) as exc_info:
            await opener.open("t-1", "alice", DirectTcpIpTarget("127.0.0.1", port))

        assert exc_info.value.message.startswith(f"dial 127.0.0.1:{port}: ")
