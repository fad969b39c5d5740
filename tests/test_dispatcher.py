"""
Tests for the per-connection channel dispatcher.
"""

import asyncio

import pytest

from burrow.core.domain.channels import (
    ChannelOpen, ConnectionInfo, DirectTcpIpTarget, RejectReason
)
from burrow.core.exceptions import ChannelOpenRejected
from burrow.core.services.dispatcher import ChannelDispatcher
from burrow.core.services.session_handler import SessionHandler
from burrow.core.services.tunnel_handler import TunnelHandler, TunnelOpener
from burrow.infrastructure.net.tcp import PatternForwardPolicy


class SlowDialer:
    """Dialer that never completes until cancelled."""

    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def dial(self, host: str, port: int):
        self.started.set()
        await asyncio.Event().wait()


class TestChannelDispatcher:
    """Test cases for ChannelDispatcher."""

    @pytest.fixture
    def connection(self) -> ConnectionInfo:
        return ConnectionInfo(username="alice", peer_host="192.0.2.10", peer_port=50022,
                              connection_id="abc123")

    @pytest.fixture
    def session_factory(self, terminal_factory, launcher):
        def factory(channel_id: str) -> SessionHandler:
            return SessionHandler(channel_id, terminal_factory, launcher)
        return factory

    @pytest.fixture
    def dispatcher(self, connection, session_factory, dialer) -> ChannelDispatcher:
        return ChannelDispatcher(connection, session_factory, TunnelOpener(dialer))

    @pytest.mark.asyncio
    async def test_session_channels_get_sequential_ids(self, dispatcher: ChannelDispatcher) -> None:
        first = await dispatcher.dispatch(ChannelOpen(kind="session"))
        second = await dispatcher.dispatch(ChannelOpen(kind="session"))

        assert isinstance(first, SessionHandler)
        assert first.channel_id == "abc123-1"
        assert second.channel_id == "abc123-2"
        assert dispatcher.get_metrics()['sessions_opened'] == 2
        assert dispatcher.get_metrics()['channels_active'] == 2

    @pytest.mark.asyncio
    async def test_unknown_channel_type(self, dispatcher: ChannelDispatcher) -> None:
        with pytest.raises(ChannelOpenRejected) as exc_info:
            await dispatcher.dispatch(ChannelOpen(kind="x11"))

        assert exc_info.value.reason is RejectReason.UNKNOWN_CHANNEL_TYPE
        assert exc_info.value.message == "unknown channel type: x11"
        assert dispatcher.get_metrics()['channels_rejected'] == 1

    @pytest.mark.asyncio
    async def test_direct_tcpip_without_target(self, dispatcher: ChannelDispatcher) -> None:
        with pytest.raises(ChannelOpenRejected) as exc_info:
            await dispatcher.dispatch(ChannelOpen(kind="direct-tcpip"))

        assert exc_info.value.reason is RejectReason.CONNECT_FAILED
        assert exc_info.value.message == "error parsing forward data"

    @pytest.mark.asyncio
    async def test_direct_tcpip_opens_tunnel(self, dispatcher: ChannelDispatcher, dialer) -> None:
        target = DirectTcpIpTarget("db.internal", 5432, "127.0.0.1", 40000)

        handler = await dispatcher.dispatch(ChannelOpen(kind="direct-tcpip", target=target))

        assert isinstance(handler, TunnelHandler)
        assert handler.tunnel_id == "abc123-1"
        assert handler.target == target
        assert dialer.dials == [("db.internal", 5432)]
        assert dispatcher.get_metrics()['tunnels_opened'] == 1

    @pytest.mark.asyncio
    async def test_forwarding_disabled(self, connection, session_factory) -> None:
        dispatcher = ChannelDispatcher(connection, session_factory, None)

        with pytest.raises(ChannelOpenRejected) as exc_info:
            await dispatcher.dispatch(ChannelOpen(kind="direct-tcpip",
                                                  target=DirectTcpIpTarget("example.com", 80)))

        assert exc_info.value.reason is RejectReason.ADMINISTRATIVELY_PROHIBITED
        assert exc_info.value.message == "port forwarding is disabled"

    @pytest.mark.asyncio
    async def test_policy_veto(self, connection, session_factory, dialer) -> None:
        policy = PatternForwardPolicy(True, ["*.internal:*"])
        dispatcher = ChannelDispatcher(connection, session_factory, TunnelOpener(dialer, policy))

        with pytest.raises(ChannelOpenRejected) as exc_info:
            await dispatcher.dispatch(ChannelOpen(kind="direct-tcpip",
                                                  target=DirectTcpIpTarget("example.com", 80)))

        assert exc_info.value.reason is RejectReason.ADMINISTRATIVELY_PROHIBITED
        assert dialer.dials == []

    @pytest.mark.asyncio
    async def test_dial_refused(self, dispatcher: ChannelDispatcher, dialer) -> None:
        dialer.error = ConnectionRefusedError(111, "Connection refused")

        with pytest.raises(ChannelOpenRejected) as exc_info:
            await dispatcher.dispatch(ChannelOpen(kind="direct-tcpip",
                                                  target=DirectTcpIpTarget("127.0.0.1", 1)))

        assert exc_info.value.reason is RejectReason.CONNECT_FAILED
        assert exc_info.value.message == "dial 127.0.0.1:1: Connection refused"

    @pytest.mark.asyncio
    async def test_dial_timeout(self, dispatcher: ChannelDispatcher, dialer) -> None:
        dialer.error = asyncio.TimeoutError()

        with pytest.raises(ChannelOpenRejected) as exc_info:
            await dispatcher.dispatch(ChannelOpen(kind="direct-tcpip",
                                                  target=DirectTcpIpTarget("10.0.0.1", 22)))

        assert exc_info.value.reason is RejectReason.CONNECT_FAILED
        assert exc_info.value.message == "dial 10.0.0.1:22: timed out"

    @pytest.mark.asyncio
    async def test_rejections_do_not_affect_other_channels(self, dispatcher: ChannelDispatcher) -> None:
        with pytest.raises(ChannelOpenRejected):
            await dispatcher.dispatch(ChannelOpen(kind="forwarded-tcpip"))

        handler = await dispatcher.dispatch(ChannelOpen(kind="session"))
        assert isinstance(handler, SessionHandler)

    @pytest.mark.asyncio
    async def test_closed_dispatcher_rejects(self, dispatcher: ChannelDispatcher) -> None:
        dispatcher.close()

        with pytest.raises(ChannelOpenRejected) as exc_info:
            await dispatcher.dispatch(ChannelOpen(kind="session"))

        assert exc_info.value.message == "connection closed"

    @pytest.mark.asyncio
    async def test_close_tears_down_sessions(self, dispatcher: ChannelDispatcher,
                                             memory_stream) -> None:
        handler = await dispatcher.dispatch(ChannelOpen(kind="session"))
        channel = memory_stream("channel")
        handler.attach(channel)

        dispatcher.close()
        await asyncio.wait_for(handler.wait_closed(), 2.0)

        assert handler.is_closed
        assert channel.is_closed
        assert dispatcher.get_metrics()['channels_active'] == 0

    @pytest.mark.asyncio
    async def test_close_cancels_pending_dial(self, connection, session_factory) -> None:
        dialer = SlowDialer()
        dispatcher = ChannelDispatcher(connection, session_factory, TunnelOpener(dialer))
        pending = asyncio.ensure_future(dispatcher.dispatch(
            ChannelOpen(kind="direct-tcpip", target=DirectTcpIpTarget("slow.example", 443))))
        await asyncio.wait_for(dialer.started.wait(), 2.0)

        dispatcher.close()

        with pytest.raises(ChannelOpenRejected) as exc_info:
            await asyncio.wait_for(pending, 2.0)
        assert exc_info.value.message == "connection closed"

    @pytest.mark.asyncio
    async def test_close_closes_unattached_tunnels(self, dispatcher: ChannelDispatcher, dialer) -> None:
        await dispatcher.dispatch(ChannelOpen(kind="direct-tcpip",
                                              target=DirectTcpIpTarget("db.internal", 5432)))
        upstream = dialer.streams[0]

        dispatcher.close()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert upstream.is_closed
