"""
Outbound TCP connections for direct-tcpip tunnels.
"""

import asyncio
from fnmatch import fnmatchcase
from typing import List, Optional, Sequence

from loguru import logger

from ...core.domain.channels import DirectTcpIpTarget
from ...core.exceptions import StreamClosedError
from ...core.interfaces.session import IDialer, IForwardPolicy
from ...core.interfaces.streams import IByteStream


class SocketStream(IByteStream):
    """Byte stream over an asyncio stream reader/writer pair."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 name: str = "socket") -> None:
        self._reader = reader
        self._writer = writer
        self._name = name
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def read(self, max_bytes: int) -> bytes:
        if self._closed:
            return b""
        return await self._reader.read(max_bytes)

    async def write(self, data: bytes) -> None:
        if self._closed or self._writer.is_closing():
            raise StreamClosedError(f"{self._name} is closed")
        self._writer.write(data)
        await self._writer.drain()

    async def write_eof(self) -> None:
        if not self._closed and self._writer.can_write_eof():
            self._writer.write_eof()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error closing {self._name}: {e}")


class TcpDialer(IDialer):
    """
    Dials TCP destinations with a connect timeout.

    Args:
        timeout: Seconds allowed for name resolution and connect
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    async def dial(self, host: str, port: int) -> IByteStream:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), self._timeout)
        return SocketStream(reader, writer, name=f"{host}:{port}")


class PatternForwardPolicy(IForwardPolicy):
    """
    Forwarding policy driven by configuration.

    Args:
        enabled: Whether forwarding is allowed at all
        allowed_destinations: ``host:port`` glob patterns; empty allows any
    """

    def __init__(self, enabled: bool = True, allowed_destinations: Optional[Sequence[str]] = None) -> None:
        self._enabled = enabled
        self._patterns: List[str] = list(allowed_destinations or [])

    def permits(self, username: str, target: DirectTcpIpTarget) -> bool:
        if not self._enabled:
            return False
        if not self._patterns:
            return True
        destination = f"{target.dest_host}:{target.dest_port}"
        return any(fnmatchcase(destination, pattern) for pattern in self._patterns)
