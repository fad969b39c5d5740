"""
direct-tcpip tunnel handling.

The destination is dialed before the channel is accepted; once accepted, the
channel and the socket are bridged until either side closes.
"""

import asyncio
from typing import Optional

from loguru import logger

from ..domain.channels import DirectTcpIpTarget, RejectReason
from ..exceptions import ChannelOpenRejected
from ..interfaces.session import IDialer, IForwardPolicy
from ..interfaces.streams import IByteStream
from .bridge import StreamBridge


class TunnelHandler:
    """
    A connected tunnel waiting for, or bridging, its SSH channel.

    Args:
        tunnel_id: Identifier used in log messages
        target: Requested destination
        upstream: Connected stream to the destination
    """

    def __init__(self, tunnel_id: str, target: DirectTcpIpTarget, upstream: IByteStream) -> None:
        self._tunnel_id = tunnel_id
        self._target = target
        self._upstream = upstream
        self._bridge: Optional[StreamBridge] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def tunnel_id(self) -> str:
        return self._tunnel_id

    @property
    def target(self) -> DirectTcpIpTarget:
        return self._target

    @property
    def bridge(self) -> Optional[StreamBridge]:
        return self._bridge

    @property
    def is_closed(self) -> bool:
        return self._bridge is not None and self._bridge.shutdown.is_set

    def attach(self, stream: IByteStream) -> None:
        """Start bridging once the channel has been accepted."""
        if self._bridge is not None:
            raise RuntimeError(f"Tunnel {self._tunnel_id} is already attached")
        self._bridge = StreamBridge(stream, self._upstream, name=f"tunnel:{self._tunnel_id}")
        self._task = asyncio.ensure_future(self._run())

    async def close(self) -> None:
        """Close the tunnel, e.g. when the channel never got attached."""
        if self._bridge is None:
            await self._upstream.close()
            return
        self._bridge.shutdown.trigger("closed")
        await self.wait_closed()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> None:
        assert self._bridge is not None
        reason = await self._bridge.run()
        stats = self._bridge.bytes_transferred
        logger.info(f"Tunnel {self._tunnel_id} to {self._target.destination} closed ({reason}), "
                    f"{stats['left_to_right']} bytes out, {stats['right_to_left']} bytes in")


class TunnelOpener:
    """
    Applies the forwarding policy and dials tunnel destinations.

    Args:
        dialer: Outbound connection factory
        policy: Optional forwarding authorization hook; None permits all
    """

    def __init__(self, dialer: IDialer, policy: Optional[IForwardPolicy] = None) -> None:
        self._dialer = dialer
        self._policy = policy

    async def open(self, tunnel_id: str, username: str, target: DirectTcpIpTarget) -> TunnelHandler:
        """
        Dial the destination and return a handler ready to be attached.

        Raises:
            ChannelOpenRejected: If the policy vetoes the destination or
                the dial fails.
        """
        if self._policy is not None and not self._policy.permits(username, target):
            logger.warning(f"Forwarding to {target.destination} denied for {username}")
            raise ChannelOpenRejected(RejectReason.ADMINISTRATIVELY_PROHIBITED,
                                      "port forwarding is disabled")

        try:
            upstream = await self._dialer.dial(target.dest_host, target.dest_port)
        except asyncio.TimeoutError:
            raise ChannelOpenRejected(RejectReason.CONNECT_FAILED,
                                      f"dial {target.destination}: timed out")
        except OSError as e:
            raise ChannelOpenRejected(RejectReason.CONNECT_FAILED,
                                      f"dial {target.destination}: {e.strerror or e}")

        logger.info(f"Tunnel {tunnel_id} connected to {target.destination} "
                    f"(originator {target.orig_host}:{target.orig_port})")
        return TunnelHandler(tunnel_id, target, upstream)
