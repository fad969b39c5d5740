"""
asyncssh session objects bound to Burrow's channel handlers.

These classes only translate asyncssh callbacks into domain requests and
stream events; every decision is made by the core handlers.
"""

from typing import Any, Mapping, Optional, Tuple

import asyncssh
from loguru import logger

from ...core.domain.channels import WindowSize
from ...core.domain.requests import (
    ExecRequest, PtyRequest, ShellRequest, SubsystemRequest, UnsupportedRequest,
    WindowChangeRequest
)
from ...core.services.session_handler import SessionHandler
from ...core.services.tunnel_handler import TunnelHandler
from .channel import ChannelStream


class SSHSessionAdapter(asyncssh.SSHServerSession):
    """Feeds a session channel's requests and data to a ``SessionHandler``."""

    def __init__(self, handler: SessionHandler) -> None:
        self._handler = handler
        self._stream: Optional[ChannelStream] = None

    @property
    def handler(self) -> SessionHandler:
        return self._handler

    def connection_made(self, chan: Any) -> None:
        self._stream = ChannelStream(chan, name=f"channel {self._handler.channel_id}")
        self._handler.attach(self._stream)

    def pty_requested(self, term_type: str, term_size: Tuple[int, int, int, int],
                      term_modes: Mapping[int, int]) -> bool:
        request = PtyRequest(term_type=term_type or "xterm", size=WindowSize.from_tuple(term_size))
        return bool(self._handler.handle_request(request))

    def terminal_size_changed(self, width: int, height: int,
                              pixwidth: int, pixheight: int) -> None:
        self._handler.handle_request(
            WindowChangeRequest(size=WindowSize(width, height, pixwidth, pixheight)))

    def shell_requested(self) -> bool:
        return bool(self._handler.handle_request(ShellRequest()))

    def exec_requested(self, command: str) -> bool:
        return bool(self._handler.handle_request(ExecRequest(command=command)))

    def subsystem_requested(self, subsystem: str) -> bool:
        return bool(self._handler.handle_request(SubsystemRequest(subsystem=subsystem)))

    def break_received(self, msec: int) -> bool:
        return bool(self._handler.handle_request(UnsupportedRequest(request_type="break")))

    def signal_received(self, signal: str) -> None:
        logger.debug(f"Ignoring signal {signal} on channel {self._handler.channel_id}")

    def data_received(self, data: bytes, datatype: Optional[int]) -> None:
        if self._stream is not None:
            self._stream.feed_data(data)

    def eof_received(self) -> bool:
        if self._stream is not None:
            self._stream.feed_eof()
        # Keep our side open; output may still follow the client's EOF
        return True

    def pause_writing(self) -> None:
        if self._stream is not None:
            self._stream.pause_writing()

    def resume_writing(self) -> None:
        if self._stream is not None:
            self._stream.resume_writing()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if self._stream is not None:
            self._stream.connection_lost(exc)
        self._handler.close()


class SSHTunnelAdapter(asyncssh.SSHTCPSession):
    """Bridges a direct-tcpip channel through a ``TunnelHandler``."""

    def __init__(self, handler: TunnelHandler) -> None:
        self._handler = handler
        self._stream: Optional[ChannelStream] = None

    @property
    def handler(self) -> TunnelHandler:
        return self._handler

    def connection_made(self, chan: Any) -> None:
        self._stream = ChannelStream(chan, name=f"tunnel {self._handler.tunnel_id}")
        self._handler.attach(self._stream)

    def data_received(self, data: bytes, datatype: Optional[int]) -> None:
        if self._stream is not None:
            self._stream.feed_data(data)

    def eof_received(self) -> bool:
        if self._stream is not None:
            self._stream.feed_eof()
        return True

    def pause_writing(self) -> None:
        if self._stream is not None:
            self._stream.pause_writing()

    def resume_writing(self) -> None:
        if self._stream is not None:
            self._stream.resume_writing()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if self._stream is not None:
            self._stream.connection_lost(exc)
