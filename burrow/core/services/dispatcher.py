"""
Per-connection channel dispatcher.

For every channel-open event the dispatcher either rejects the channel or
creates the handler that will own it. It never waits on a handler: running
the handler is up to the handler itself.
"""

import asyncio
import itertools
from typing import Any, Callable, Dict, Optional, Set, Union

from loguru import logger

from ..domain.channels import ChannelKind, ChannelOpen, ConnectionInfo, DirectTcpIpTarget, RejectReason
from ..exceptions import ChannelOpenRejected
from .session_handler import SessionHandler
from .tunnel_handler import TunnelHandler, TunnelOpener

SessionFactory = Callable[[str], SessionHandler]
ChannelHandler = Union[SessionHandler, TunnelHandler]


class ChannelDispatcher:
    """
    Accepts or rejects the channels of one connection.

    Args:
        connection: The authenticated connection
        session_factory: Builds a SessionHandler for a channel id
        tunnel_opener: Opens direct-tcpip tunnels; None disables forwarding
    """

    def __init__(self,
                 connection: ConnectionInfo,
                 session_factory: SessionFactory,
                 tunnel_opener: Optional[TunnelOpener] = None) -> None:
        self._connection = connection
        self._session_factory = session_factory
        self._tunnel_opener = tunnel_opener
        self._sequence = itertools.count(1)
        self._handlers: Dict[str, ChannelHandler] = {}
        self._dials: Set[asyncio.Task] = set()
        self._closed = False
        self._metrics: Dict[str, int] = {
            'sessions_opened': 0,
            'tunnels_opened': 0,
            'channels_rejected': 0,
        }

    @property
    def connection(self) -> ConnectionInfo:
        return self._connection

    @property
    def handlers(self) -> Dict[str, ChannelHandler]:
        return dict(self._handlers)

    def get_metrics(self) -> Dict[str, Any]:
        return dict(self._metrics, channels_active=len(self._live_handlers()))

    async def dispatch(self, request: ChannelOpen) -> ChannelHandler:
        """
        Handle a channel-open event.

        Args:
            request: Channel kind and, for direct-tcpip, the decoded target

        Returns:
            The handler that owns the accepted channel

        Raises:
            ChannelOpenRejected: If the channel must be refused
        """
        try:
            if self._closed:
                raise ChannelOpenRejected(RejectReason.CONNECT_FAILED, "connection closed")
            if request.kind == ChannelKind.SESSION.value:
                return self._open_session()
            if request.kind == ChannelKind.DIRECT_TCPIP.value:
                return await self._open_tunnel(request.target)
            raise ChannelOpenRejected(RejectReason.UNKNOWN_CHANNEL_TYPE,
                                      f"unknown channel type: {request.kind}")
        except ChannelOpenRejected as e:
            self._metrics['channels_rejected'] += 1
            logger.info(f"Rejected {request.kind} channel on connection "
                        f"{self._connection.connection_id}: {e.message}")
            raise

    def close(self) -> None:
        """Tear down every channel of the connection."""
        if self._closed:
            return
        self._closed = True
        for task in list(self._dials):
            task.cancel()
        for handler in self._handlers.values():
            if isinstance(handler, SessionHandler):
                handler.close()
            else:
                asyncio.ensure_future(handler.close())
        logger.debug(f"Dispatcher for connection {self._connection.connection_id} closed")

    def _next_channel_id(self) -> str:
        return f"{self._connection.connection_id}-{next(self._sequence)}"

    def _open_session(self) -> SessionHandler:
        self._prune()
        channel_id = self._next_channel_id()
        handler = self._session_factory(channel_id)
        self._handlers[channel_id] = handler
        self._metrics['sessions_opened'] += 1
        logger.debug(f"Accepted session channel {channel_id} for {self._connection.username}")
        return handler

    async def _open_tunnel(self, target: Optional[DirectTcpIpTarget]) -> TunnelHandler:
        if target is None:
            raise ChannelOpenRejected(RejectReason.CONNECT_FAILED, "error parsing forward data")
        if self._tunnel_opener is None:
            raise ChannelOpenRejected(RejectReason.ADMINISTRATIVELY_PROHIBITED,
                                      "port forwarding is disabled")

        self._prune()
        channel_id = self._next_channel_id()
        task = asyncio.ensure_future(
            self._tunnel_opener.open(channel_id, self._connection.username, target))
        self._dials.add(task)
        try:
            handler = await task
        except asyncio.CancelledError:
            raise ChannelOpenRejected(RejectReason.CONNECT_FAILED, "connection closed")
        finally:
            self._dials.discard(task)

        if self._closed:
            await handler.close()
            raise ChannelOpenRejected(RejectReason.CONNECT_FAILED, "connection closed")

        self._handlers[channel_id] = handler
        self._metrics['tunnels_opened'] += 1
        return handler

    def _live_handlers(self) -> Dict[str, ChannelHandler]:
        return {cid: h for cid, h in self._handlers.items() if not h.is_closed}

    def _prune(self) -> None:
        self._handlers = self._live_handlers()
