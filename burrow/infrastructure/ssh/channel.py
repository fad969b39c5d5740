"""
Byte stream over an asyncssh channel.

asyncssh delivers channel events through session callbacks; ``ChannelStream``
turns them into the awaitable ``IByteStream`` contract, with back pressure in
both directions.
"""

import asyncio
from typing import Any, Optional

from loguru import logger

from ...core.exceptions import StreamClosedError
from ...core.interfaces.streams import IByteStream

HIGH_WATER = 256 * 1024
LOW_WATER = 64 * 1024


class ChannelStream(IByteStream):
    """
    Adapts an ``asyncssh.SSHChannel`` to ``IByteStream``.

    The owning session object forwards ``data_received``, ``eof_received``,
    ``pause_writing``, ``resume_writing`` and ``connection_lost`` here.
    """

    def __init__(self, channel: Any, name: str = "channel",
                 high_water: int = HIGH_WATER, low_water: int = LOW_WATER) -> None:
        self._channel = channel
        self._name = name
        self._high_water = high_water
        self._low_water = low_water

        self._buffer = bytearray()
        self._eof = False
        self._closed = False
        self._reading_paused = False
        self._data_ready = asyncio.Event()
        self._can_write = asyncio.Event()
        self._can_write.set()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def at_eof(self) -> bool:
        return self._eof and not self._buffer

    # Callbacks from the session

    def feed_data(self, data: bytes) -> None:
        if self._closed:
            return
        self._buffer.extend(data)
        self._data_ready.set()
        if not self._reading_paused and len(self._buffer) > self._high_water:
            self._reading_paused = True
            self._channel.pause_reading()

    def feed_eof(self) -> None:
        self._eof = True
        self._data_ready.set()

    def pause_writing(self) -> None:
        self._can_write.clear()

    def resume_writing(self) -> None:
        self._can_write.set()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            logger.debug(f"{self._name} lost: {exc}")
        self._closed = True
        self._eof = True
        self._data_ready.set()
        self._can_write.set()

    # IByteStream

    async def read(self, max_bytes: int) -> bytes:
        while not self._buffer:
            if self._eof or self._closed:
                return b""
            self._data_ready.clear()
            await self._data_ready.wait()

        data = bytes(self._buffer[:max_bytes])
        del self._buffer[:max_bytes]

        if self._reading_paused and len(self._buffer) <= self._low_water and not self._closed:
            self._reading_paused = False
            self._channel.resume_reading()
        return data

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise StreamClosedError(f"{self._name} is closed")
        self._channel.write(data)
        await self._can_write.wait()
        if self._closed:
            raise StreamClosedError(f"{self._name} closed while writing")

    async def write_eof(self) -> None:
        if self._closed:
            return
        try:
            self._channel.write_eof()
        except OSError as e:
            logger.debug(f"Cannot send EOF on {self._name}: {e}")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        self._data_ready.set()
        self._can_write.set()
        self._channel.close()
